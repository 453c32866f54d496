"""
MCP tools for NoteBridge.

Each module exposes tools for a specific workflow:
- note_edits: Propose a note edit, review it hunk by hunk, apply or discard it
"""
