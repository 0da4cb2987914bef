"""sysmon - host health collection engine.

sysmon turns the optional, inconsistent information sources of a Linux,
WSL or Android/Termux host into one schema-stable Snapshot, and hands that
snapshot to a terminal renderer, a dashboard JSON file, a historical log,
an HTML report, a REST API and MQTT.

Packages:
    core: Data model, capabilities, assembly, configuration, messaging
    collectors: Per-domain collectors with ordered fallback strategies
    sinks: Snapshot outputs (JSON file, history log, MQTT)
    monitors: Polling session
    api: REST API
    utils: Platform detection, source access, normalization, formatting
"""
