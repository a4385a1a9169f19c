"""
Imperative shell: collaborator interfaces, the market service, and transports.
"""
