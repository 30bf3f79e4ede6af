"""
List History

Modules:
- audit: Append-only demon modification/addition log
- reconstruct: Point-in-time list reconstruction
"""
