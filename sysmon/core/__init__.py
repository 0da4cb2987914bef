"""Core infrastructure for sysmon.

Modules:
    models: Frozen snapshot dataclasses and sentinel values
    result: Ok/Failure results and fallback chains
    capabilities: Capability probing and the session's CapabilityMatrix
    assembler: Snapshot assembly and health classification
    config: Configuration management for the application
    messaging: MQTT messaging abstraction layer
"""
