"""Engine layer — the stateful side of the audio core.

Modules:
    protocols  Contracts for the platform collaborators (probe, handle, surface).
    bus        Priority-ordered publish/subscribe coordination bus.
    topics     Typed, schema-validated topics over the bus.
    lifecycle  Audio resource lifecycle manager.
    errors     Error reporter (log, dedupe, publish, notify).
    facade     Engine facade and process-wide slot.
    settings   Environment-driven configuration.
"""
