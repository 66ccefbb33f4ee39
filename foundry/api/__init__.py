"""
HTTP API for ai-foundry.
"""
