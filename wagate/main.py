"""
Default application module.

    uvicorn wagate.main:asgi --port 4000
"""

from wagate.core.gateway_app import Gateway

gateway = Gateway()
app = gateway.app
asgi = gateway.asgi

if __name__ == "__main__":
    gateway.run()
