# Locust monkey-patches via gevent on import; patch first so anyio/threading
# (used by FastAPI's TestClient) see the patched primitives.
from gevent import monkey

monkey.patch_all()
