"""
Test Suite for stagebot

- registry / matcher / router / workflow: routing and token units
- pipeline: failure boundary, delivery policy, concurrency
- handlers: track and release workflows end to end
- remote / github / config / telegram_transport: adapters
"""
