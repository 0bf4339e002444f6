"""
Boards, columns, cards and their ordering.
"""
