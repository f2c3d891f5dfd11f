"""
MCP tool surface for the voice calendar agent
"""
