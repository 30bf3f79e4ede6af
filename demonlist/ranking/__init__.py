"""
Ranking

Modules:
- materializer: Competition ranks, rank table refresh and ranked views
"""
