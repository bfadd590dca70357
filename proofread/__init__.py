"""Document proofreading pipeline: chunking, correction, diff highlighting and jobs."""

__version__ = "0.1.0"
