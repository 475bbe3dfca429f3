import socket

import uvicorn


def find_free_port(host: str = "127.0.0.1") -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def resolve_port(port: int) -> int:
    """Port 0 means pick any free local port."""
    return port or find_free_port()


def start_server(app, host: str, port: int):
    # The launching shell reads the chosen port from stdout
    print(f"PORT:{port}", flush=True)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="warning",
    )
