"""
Action plan promotion onto boards.
"""
