from .aggregation_gateway import AggregationGateway

__all__ = ["AggregationGateway"]
