"""Moderation subsystem.

Self-contained modules:
- matching (user and server entity globs)
- rule store (rules kept as state events in rule-list rooms)
- rule engine (deterministic, Ban < Kick < Mute)
- action engine (idempotent ban/kick, power-level mutes, audit records)
- pipeline (per-member enforcement and retroactive sweeps)
"""
