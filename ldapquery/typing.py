"""
Type aliases for the raw data python-ldap hands back to us.
"""

#: The attributes of one entry: attribute name to list of raw values
LDAPAttributes = dict[str, list[bytes]]
#: One ``(dn, attrs)`` tuple as returned by ``result3()`` and ``search_s()``
LDAPData = tuple[str, LDAPAttributes]
