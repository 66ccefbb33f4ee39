"""
ai-foundry: sandboxed coding-agent orchestration for project tasks.

Binds each project to a local directory, hands task descriptions to the
Claude Agent SDK confined to that directory, and records every run.
"""
__version__ = "0.3.0"
