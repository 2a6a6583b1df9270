"""Pipeline phase modules for one StreamFlow conversation turn.

Each module encapsulates one phase: building and issuing the request
(``request_phase``) and consuming the event stream it returns
(``stream_phase``). Both operate on an explicit ``SessionContext``.
"""
