"""Entry point: starts the prediction league API server."""

import argparse
import logging
import os


def main():
    parser = argparse.ArgumentParser(description="Run the prediction league API.")
    parser.add_argument("--host", default=None, help="Bind address (default: LEAGUE_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, default=None, help="Port (default: LEAGUE_PORT or 9875)")
    parser.add_argument("--db", default=None, help="SQLite database path (default: LEAGUE_DB_PATH)")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    args = parser.parse_args()

    # The database path is read when league.config is first imported.
    if args.db:
        os.environ["LEAGUE_DB_PATH"] = args.db

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    from league.app import app
    from league.config import HOST, PORT

    host = args.host or HOST
    port = args.port or PORT
    print(f"Starting prediction league API at http://{host}:{port}")
    app.run(host=host, port=port, debug=args.debug, threaded=True)


if __name__ == "__main__":
    main()
