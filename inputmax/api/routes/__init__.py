from . import credits, jobs, proxy

__all__ = ["credits", "jobs", "proxy"]
