"""
Conversational turn pipeline.

    workflow metadata -> resolver -> context -> prompt + tools -> history
    -> stream (detached drain task) -> finish/persistence

- resolver.py:     conversation lookup / get-or-create by campaign
- context.py:      side-context assembly (metrics, offer, plan, edit reference)
- history.py:      bounded history load + validation with fallback
- stream.py:       per-turn state machine, model/tool loop, client channel
- finish.py:       persistence, titling, summarization trigger
- orchestrator.py: wires one turn together
"""
