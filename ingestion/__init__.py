"""
Import pipeline components: Read -> Transform -> Send.

Modules:
    base: WorkUnit and the Sink interface
    sender: Rate limiter and the retrying ResilientSender
    runner: ImportRunner, per-record isolation, resume and sharding
    checkpoint: Versioned resume marker (ResumeTracker)
    audit_log: Failure and success CSV logs

Subpackages:
    extractors: CSV files/chunk directories and third-party API readers
    transformers: Field normalization and record -> payload transformers
    loaders: HTTP (DX API, webhooks) and Postgres sinks

Usage:
    from ingestion.extractors.csv_extractor import CSVExtractor
    from ingestion.loaders.http_loader import HTTPSink
    from ingestion.runner import ImportRunner
    from ingestion.sender import RateLimiter, ResilientSender

    sender = ResilientSender(HTTPSink(url, token=token), RateLimiter(7))
    runner = ImportRunner("pipelines", sender)
    summary = await runner.run(CSVExtractor(path).iter_units(), PipelineRunTransformer())
"""

__all__ = [
    "WorkUnit",
    "Sink",
    "ResilientSender",
    "RateLimiter",
    "ImportRunner",
    "ResumeTracker",
]
