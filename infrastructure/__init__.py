"""Infrastructure layer — ambient concerns of the audio engine core.

Modules:
    diagnostics  Logging setup and the bounded in-memory diagnostics buffer.
    metrics      Prometheus metrics registry.
    retry        Exponential backoff delays for the automatic resume path.
"""
