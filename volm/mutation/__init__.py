"""Write side of volm: selector-checked claim deletion."""

from volm.mutation.gateway import MutationGateway

__all__ = ["MutationGateway"]
