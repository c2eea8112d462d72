"""Agent/task orchestration engine.

The bridge dispatches work to an external execution service, polls it on a
cancellable asyncio task per agent, extracts code artifacts and follow-up
tasks from the reply, and persists the artifacts through a versioned file
store. All state lives in memory on a single event loop; the only suspension
points are backend and file store calls.
"""
