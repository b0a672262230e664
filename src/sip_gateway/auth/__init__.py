"""
Authentication and authorization: identity tokens and the role/capability model.
"""
