"""Meeting financial calculation"""
