"""Application services layer.

Services coordinate backend tables, storage and the domain helpers for one
feature each (content, forum, interactions, roles, auth, accessibility). They
should avoid UI concerns.
"""
