"""
Core orchestration primitives for ai-foundry.

Path containment, directory bindings, the agent event pump, run logs
and the summarizer adapter. Import submodules directly, e.g.
``from foundry.core.path_guard import check_within_roots``.
"""
