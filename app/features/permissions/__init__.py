"""
Permission resolution feature module.

Decides whether a user may use a permission code inside a group: owner
bypass first, then role grants of active memberships, then special
permissions granted to the user.
"""
