"""Edge API, version 1.

Routes live in ``app.api.v1.routers``: signed-URL issuance, the HLS playlist
proxy and the media catalog. ``app.main`` mounts them under ``API_V1_STR``.
"""

__all__: list[str] = []
