"""
Job Scheduler Test Suite.

- persistence: store contract, typed layer, atomic writes
- resolver: versioned spec decoders
- executor: action semantics
- retry_controller: due/backoff state machine
- dispatcher: tick, concurrency gate, outcome recording
- registry: job and raw key operations
- heartbeat / service: lifecycle
"""
