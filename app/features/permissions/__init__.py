"""
Permission management feature module.

Role-based, field-level authorization: which menus a role may open and
which fields of each screen it may view or edit.
"""
