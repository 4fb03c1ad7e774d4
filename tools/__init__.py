from tools.data_aggregator import MarketDataAggregator, compute_breadth
from tools.fundamentals import YOY_CATEGORY_LABELS, categorize_yoy
from tools.models import (
    IndexLevel,
    MarketBreadth,
    MarketSnapshot,
    NewsItem,
    NewsSentiment,
    Sentiment,
    StockFundamentals,
    StockQuote,
)
from tools.news_retrieval import NewsRetrievalTool, tag_sentiment

__all__ = [
    "IndexLevel",
    "MarketBreadth",
    "MarketDataAggregator",
    "MarketSnapshot",
    "NewsItem",
    "NewsRetrievalTool",
    "NewsSentiment",
    "Sentiment",
    "StockFundamentals",
    "StockQuote",
    "YOY_CATEGORY_LABELS",
    "categorize_yoy",
    "compute_breadth",
    "tag_sentiment",
]
