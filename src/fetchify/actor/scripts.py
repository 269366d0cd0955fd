"""JavaScript snippets evaluated in the page by ``Page``.

Each snippet is the source of a function expression; ``Page.evaluate``
invokes it with JSON-encoded arguments.
"""

SCROLL_TO_BOTTOM = """() => {
    window.scrollTo(0, document.body.scrollHeight);
}"""

# Hosts and path fragments that identify artwork served by the streaming CDN.
CDN_IMAGE_MARKERS = [
    'i.scdn.co/image/',
    'image-cdn-fa.spotifycdn.com',
    'image-cdn-ak.spotifycdn.com',
]
# Any URL containing this brand and one of IMAGE_EXTENSIONS also counts.
CDN_BRAND = 'spotify'
IMAGE_EXTENSIONS = ['.jpg', '.png', '.webp']

CACHE_IMAGE_ENTRIES = """async (markers, brand, extensions) => {
    const isImage = (url) =>
        markers.some((m) => url.includes(m)) ||
        (url.includes(brand) && (extensions.some((e) => url.includes(e)) || url.includes('image/')));

    if (typeof caches === 'undefined') {
        return [];
    }

    const urls = [];
    try {
        for (const cacheName of await caches.keys()) {
            const cache = await caches.open(cacheName);
            for (const request of await cache.keys()) {
                if (isImage(request.url)) {
                    urls.push(request.url);
                }
            }
        }
    } catch (error) {
        return [];
    }
    return urls.map((url) => ({ url, method: 'GET', headers: {} }));
}"""

DOM_IMAGE_ENTRIES = """(markers, brand, extensions) => {
    const isImage = (url) =>
        markers.some((m) => url.includes(m)) ||
        (url.includes(brand) && extensions.some((e) => url.includes(e)));

    const urls = [];
    document.querySelectorAll('img').forEach((img) => {
        if (img.src && isImage(img.src)) {
            urls.push(img.src);
        }
    });

    document.querySelectorAll('*').forEach((element) => {
        const bgImage = window.getComputedStyle(element).backgroundImage;
        if (!bgImage || bgImage === 'none') {
            return;
        }
        const match = bgImage.match(/url\\(['"]?([^'"]+)['"]?\\)/);
        if (match && match[1] && isImage(match[1])) {
            urls.push(match[1]);
        }
    });

    return [...new Set(urls)].map((url) => ({ url, method: 'GET', headers: {} }));
}"""
