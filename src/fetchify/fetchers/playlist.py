"""Playlist page scraper.

Playlist pages render rows lazily, so in auto mode the fetcher keeps
scrolling until the row count reaches the count advertised in the page
header, stops growing for ``MAX_STABLE_SCROLLS`` rounds, or
``MAX_SCROLLS`` rounds have passed.
"""

import asyncio
import json
import logging
from pathlib import Path

from fetchify.browser.browser import Browser
from fetchify.browser.profile import BrowserConfig
from fetchify.exceptions import BrowserNotLaunchedError
from fetchify.fetchers.views import Track, TrackPageInfo

logger = logging.getLogger(__name__)

ROW_SELECTOR = '[data-testid="tracklist-row"]'
METADATA_SELECTOR = (
    '[data-testid="playlist-page"] span, .main-entityHeader-subtitle span, [data-testid="entityTitle"] span'
)
# Matches the track count in the header, e.g. "57 songs" or "57 utworów".
TRACK_COUNT_PATTERN = r'(\d+)\s*(?:songs?|utworów?|tracks?)'

TRACK_PAGE_INFO = """(rowSelector, metadataSelector, countPattern) => {
    const pattern = new RegExp(countPattern, 'i');
    let expectedTracks = 0;
    for (const el of document.querySelectorAll(metadataSelector)) {
        const match = (el.textContent || '').trim().match(pattern);
        if (match) {
            expectedTracks = parseInt(match[1], 10);
            break;
        }
    }
    return {
        expectedTracks,
        currentTracks: document.querySelectorAll(rowSelector).length,
    };
}"""

SCROLL_TRACKLIST = """() => {
    window.scrollTo(0, document.body.scrollHeight);
    const main = document.querySelector('[data-testid="playlist-page"]')
        || document.querySelector('main')
        || document.querySelector('.main-view-container');
    if (main) {
        main.scrollTop = main.scrollHeight;
    }
    const tracklist = document.querySelector('[data-testid="playlist-tracklist"]')
        || document.querySelector('.tracklist-container');
    if (tracklist) {
        tracklist.scrollTop = tracklist.scrollHeight;
    }
    window.scrollBy(0, window.innerHeight);
}"""

COUNT_ROWS = """(rowSelector) => document.querySelectorAll(rowSelector).length"""

EXTRACT_TRACKS = """(rowSelector, limit) => {
    const all = [...document.querySelectorAll(rowSelector)];
    const rows = limit == null ? all : all.slice(0, limit);
    const tracks = [];
    rows.forEach((row, i) => {
        const titleEl = row.querySelector('[data-testid="internal-track-link"]');
        const title = titleEl?.textContent?.trim() || `Track ${i + 1}`;

        const artists = [];
        const collect = (el) => {
            const name = el.textContent?.trim();
            if (name && !name.includes('・') && !artists.includes(name)) {
                artists.push(name);
            }
        };
        row.querySelectorAll('a[href*="/artist/"]').forEach(collect);
        if (artists.length === 0) {
            row.querySelectorAll('span[dir="auto"] a, [data-testid="internal-track-link"] + span a').forEach(collect);
        }

        const link = titleEl?.getAttribute('href') || '';
        const idMatch = link.match(/track\\/([a-zA-Z0-9]+)/);
        tracks.push({
            id: idMatch ? idMatch[1] : `track_${i}`,
            title,
            artist: artists.length > 0 ? artists.join(', ') : 'Unknown Artist',
            duration: 0,
            spotify_url: idMatch ? `https://open.spotify.com/track/${idMatch[1]}` : '',
        });
    });
    return tracks;
}"""


class PlaylistFetcher:
    """Scrapes the track rows of a playlist page."""

    SETTLE_DELAY = 3.0
    SCROLL_WAIT = 3.0
    MAX_SCROLLS = 100
    MAX_STABLE_SCROLLS = 5

    def __init__(
        self,
        browser: Browser | None = None,
        config: BrowserConfig | None = None,
        cache_dir: str | Path | None = None,
    ):
        self._browser = browser
        self._config = config
        self.cache_dir = Path(cache_dir) if cache_dir is not None else None

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

    async def fetch_tracks(self, playlist_url: str, amount: int | None = None) -> list[Track]:
        """Scrape up to ``amount`` tracks; ``None`` means every track in the playlist.

        Args:
            playlist_url: Playlist page URL.
            amount: Maximum number of rows to read. When omitted the page is
                scrolled until all rows have loaded.

        Returns:
            Tracks in playlist order.
        """
        browser = self.browser

        await browser.goto(playlist_url)
        await asyncio.sleep(self.SETTLE_DELAY)

        if not amount:
            logger.info('Auto mode: scrolling to load all tracks...')
            info = await self.scroll_to_load_all_tracks()
            limit = info.expected_tracks if info.expected_tracks > 0 else None
        else:
            limit = amount

        logger.info('Extracting tracks...')
        raw = await browser.evaluate(EXTRACT_TRACKS, ROW_SELECTOR, limit)
        tracks = [Track.model_validate(item) for item in raw or []]

        for track in tracks:
            if track.artist == 'Unknown Artist':
                logger.debug(f'Could not find artist for track "{track.title}"')
        logger.info(f'Extracted {len(tracks)} tracks')

        if self.cache_dir is not None:
            self.save_to_cache(tracks)
        return tracks

    async def get_page_info(self) -> TrackPageInfo:
        raw = await self.browser.evaluate(TRACK_PAGE_INFO, ROW_SELECTOR, METADATA_SELECTOR, TRACK_COUNT_PATTERN)
        return TrackPageInfo.model_validate(raw or {})

    async def scroll_to_load_all_tracks(self) -> TrackPageInfo:
        """Scroll until the loaded row count stops changing.

        Returns:
            The page info read before scrolling, with ``current_tracks``
            updated to the final row count.
        """
        info = await self.get_page_info()
        logger.info(f'Expected tracks: {info.expected_tracks}, Currently loaded: {info.current_tracks}')

        if info.expected_tracks == 0:
            logger.info('Could not detect expected track count - will scroll to load more')
        elif info.current_tracks >= info.expected_tracks:
            logger.info('All tracks already loaded, no scrolling needed')
            return info

        previous = info.current_tracks
        stable_scrolls = 0
        scrolls = 0

        while scrolls < self.MAX_SCROLLS and stable_scrolls < self.MAX_STABLE_SCROLLS:
            await self.browser.evaluate(SCROLL_TRACKLIST)
            await asyncio.sleep(self.SCROLL_WAIT)

            current = await self.browser.evaluate(COUNT_ROWS, ROW_SELECTOR) or 0
            logger.info(f'Scroll {scrolls + 1}: Found {current} tracks (+{current - previous})')

            if info.expected_tracks > 0 and current >= info.expected_tracks:
                logger.info(f'Reached expected track count ({info.expected_tracks}), stopping scroll')
                previous = current
                break

            if current == previous:
                stable_scrolls += 1
                logger.debug(f'No new tracks loaded ({stable_scrolls}/{self.MAX_STABLE_SCROLLS})')
            else:
                stable_scrolls = 0

            previous = current
            scrolls += 1

        logger.info(f'Finished scrolling. Total scrolls: {scrolls}, Final track count: {previous}')
        return info.model_copy(update={'current_tracks': previous})

    def save_to_cache(self, tracks: list[Track]) -> Path | None:
        """Write ``tracks.json`` into the cache directory.

        Failures are logged and reported as None; the scrape result is still
        returned to the caller.
        """
        if self.cache_dir is None:
            return None
        path = self.cache_dir / 'tracks.json'
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps([track.model_dump() for track in tracks], indent=2, ensure_ascii=False))
        except OSError as e:
            logger.warning(f'Failed to save to cache: {e}')
            return None
        logger.info(f'Saved {len(tracks)} tracks to: {path}')
        return path

    async def close(self) -> None:
        if self._browser is not None:
            await self._browser.close()
            self._browser = None


async def fetch_playlist(
    playlist_url: str,
    amount: int | None = None,
    config: BrowserConfig | None = None,
    cache_dir: str | Path | None = None,
) -> list[Track]:
    """Launch a browser, scrape one playlist page and shut the browser down."""
    fetcher = PlaylistFetcher(config=config, cache_dir=cache_dir)
    try:
        await fetcher.init()
        return await fetcher.fetch_tracks(playlist_url, amount)
    finally:
        await fetcher.close()
