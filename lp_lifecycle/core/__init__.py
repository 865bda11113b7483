from lp_lifecycle.core.adapters.BaseAdapter import BaseAdapter

__all__ = ["BaseAdapter"]
