"""iFriends source package.

Liveness is probed by fetching the broadcaster's live-redirect page: the
site answers with an empty body while the broadcaster is streaming and with
a page body otherwise.  Names are used verbatim as identities.
"""
