"""Single track page scraper."""

import asyncio
import logging
from typing import Any

from fetchify.browser.browser import Browser
from fetchify.browser.profile import BrowserConfig
from fetchify.exceptions import BrowserNotLaunchedError
from fetchify.fetchers.views import Track

logger = logging.getLogger(__name__)

# Heading text that belongs to the app chrome rather than the track.
IGNORED_TITLE_WORDS = ['biblioteka', 'library', 'spotify', 'premium', 'poszukaj', 'search']
# Sections whose artist links are recommendations, not credits.
IGNORED_ARTIST_CONTEXT = ['recommended', 'fans also like', 'popular tracks', 'biblioteka', 'library']

EXTRACT_TRACK = """(opts) => {
    const lower = (text) => (text || '').toLowerCase();
    const main = document.querySelector('main, .main-view-container, [data-testid="track-page"]');

    let title = '';
    if (main) {
        for (const selector of ['h1', '[data-testid="entityTitle"]', '.main-entityHeader-title']) {
            const text = main.querySelector(selector)?.textContent?.trim() || '';
            if (text.length > 2 && !opts.ignoredTitleWords.some((w) => lower(text).includes(w))) {
                title = text;
                break;
            }
        }
    }
    if (!title) {
        const content = document.querySelector('meta[property="og:title"], meta[name="title"]')
            ?.getAttribute('content')?.trim() || '';
        const candidate = content.split(' by ')[0].split(' - ')[0].trim();
        if (candidate && !lower(candidate).includes('biblioteka') && !lower(candidate).includes('library')
                && !candidate.includes('Spotify')) {
            title = candidate;
        }
    }

    const artists = [];
    if (main) {
        const header = main.querySelector('.main-entityHeader-subtitle, .main-trackInfo-artists, [data-testid="creator"]');
        header?.querySelectorAll('a[href*="/artist/"]').forEach((el) => {
            const name = el.textContent?.trim();
            if (name && !artists.includes(name)) {
                artists.push(name);
            }
        });
        if (artists.length === 0) {
            const links = [...main.querySelectorAll('a[href*="/artist/"]')].slice(0, 10);
            for (const el of links) {
                const name = el.textContent?.trim();
                if (!name || name.length <= 1 || artists.includes(name)) {
                    continue;
                }
                const context = lower(el.parentElement?.parentElement?.textContent);
                if (opts.ignoredArtistContext.some((w) => context.includes(w))
                        || el.closest('.sidebar, [data-testid="nav-bar"]')) {
                    continue;
                }
                artists.push(name);
                if (artists.length >= 8) {
                    break;
                }
            }
        }
    }

    const url = window.location.href;
    const idMatch = url.match(/track\\/([a-zA-Z0-9]+)/);
    const track = {
        id: idMatch ? idMatch[1] : 'unknown',
        title: title || (url.includes('/track/') ? 'Track (URL detected)' : 'Unknown Track'),
        artist: artists.length > 0 ? artists.join(', ') : 'Unknown Artist',
        duration: 0,
        spotify_url: url,
    };

    if (opts.metadata) {
        track.album = document.querySelector('a[href*="/album/"]')?.textContent?.trim() || '';
        track.release_date = '';
        track.popularity = 0;
        for (const el of document.querySelectorAll('.main-trackInfo-container span, [data-testid="track-page"] span')) {
            const year = (el.textContent || '').match(/\\b(19|20)\\d{2}\\b/);
            if (year) {
                track.release_date = year[0];
                break;
            }
        }
        if (!track.release_date) {
            const dated = (document.body.textContent || '').match(/•\\s*(\\d{4})\\s*•/);
            if (dated) {
                track.release_date = dated[1];
            }
        }
    }

    if (opts.cover) {
        track.cover_url = document.querySelector('img[data-testid="cover-art"], img[src*="i.scdn.co"]')
            ?.getAttribute('src') || '';
    }

    return track;
}"""


class TrackFetcher:
    """Scrapes title, artists and optional metadata from a track page.

    Example:
        >>> fetcher = TrackFetcher()
        >>> await fetcher.init()
        >>> track = await fetcher.fetch_track(url, metadata=True)
        >>> await fetcher.close()
    """

    SETTLE_DELAY = 3.0

    def __init__(self, browser: Browser | None = None, config: BrowserConfig | None = None):
        self._browser = browser
        self._config = config

    async def init(self) -> None:
        if self._browser is None:
            self._browser = Browser(self._config) if self._config is not None else Browser(headless=True)
        if not self._browser.is_launched:
            await self._browser.launch()

    @property
    def browser(self) -> Browser:
        if self._browser is None:
            raise BrowserNotLaunchedError('Browser not initialized. Call init() first.')
        return self._browser

    async def fetch_track(self, track_url: str, metadata: bool = False, cover: bool = False) -> Track:
        browser = self.browser

        await browser.goto(track_url)
        await asyncio.sleep(self.SETTLE_DELAY)

        logger.info('Extracting track information...')
        options: dict[str, Any] = {
            'metadata': metadata,
            'cover': cover,
            'ignoredTitleWords': IGNORED_TITLE_WORDS,
            'ignoredArtistContext': IGNORED_ARTIST_CONTEXT,
        }
        track = Track.model_validate(await browser.evaluate(EXTRACT_TRACK, options))

        logger.info(f'Successfully fetched track: {track.title} by {track.artist}')
        return track

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None


async def fetch_track(
    track_url: str,
    metadata: bool = False,
    cover: bool = False,
    config: BrowserConfig | None = None,
) -> Track:
    """Launch a browser, scrape one track page and shut the browser down."""
    fetcher = TrackFetcher(config=config)
    try:
        await fetcher.init()
        return await fetcher.fetch_track(track_url, metadata=metadata, cover=cover)
    finally:
        await fetcher.close()
