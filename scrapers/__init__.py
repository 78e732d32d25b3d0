"""
Scrapers Module
数据源适配器
"""
from .base import BaseSourceAdapter
from .feed_scraper import FeedScraper, extract_image_url, extract_youtube_video_id
from .newsroom_scraper import (
    SCRAPER_REGISTRY,
    BlendNewsroomScraper,
    EntryCollector,
    ICEMortgageTechScraper,
    NewsroomScraper,
    RocketPressReleasesScraper,
    register_scraper,
)

__all__ = [
    # Base
    "BaseSourceAdapter",
    # Feeds
    "FeedScraper",
    "extract_image_url",
    "extract_youtube_video_id",
    # Newsrooms
    "SCRAPER_REGISTRY",
    "NewsroomScraper",
    "EntryCollector",
    "RocketPressReleasesScraper",
    "BlendNewsroomScraper",
    "ICEMortgageTechScraper",
    "register_scraper",
]
