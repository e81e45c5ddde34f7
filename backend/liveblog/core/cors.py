"""CORS for the public embed surface only; internal and operational routes get no CORS headers."""
from starlette.middleware.cors import CORSMiddleware
from starlette.types import ASGIApp, Receive, Scope, Send

PUBLIC_PATH_PREFIXES = ("/embed/", "/widgets/")


class PathScopedCORSMiddleware(CORSMiddleware):
    def __init__(self, app: ASGIApp, *, path_prefixes: tuple[str, ...] = PUBLIC_PATH_PREFIXES, **kwargs):
        super().__init__(app, **kwargs)
        self.path_prefixes = tuple(path_prefixes)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and not scope["path"].startswith(self.path_prefixes):
            await self.app(scope, receive, send)
            return
        await super().__call__(scope, receive, send)
