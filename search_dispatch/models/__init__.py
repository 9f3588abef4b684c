from search_dispatch.models.search import AggregationMetadata, ResultItem, SearchOptions

__all__ = ["AggregationMetadata", "ResultItem", "SearchOptions"]
