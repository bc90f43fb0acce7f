from .points import IngestedPoint, PointIngestor, parse_value

__all__ = ["IngestedPoint", "PointIngestor", "parse_value"]
