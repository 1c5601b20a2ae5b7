"""Validating admission webhook for pods and tenants: checks, WSGI middleware and server."""