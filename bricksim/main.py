"""
main.py - bricksim server entry point

Starts the simulator and serves brick clients until interrupted.
"""

import argparse
import asyncio
import logging
import sys

from . import __version__, config
from .maze_map import Maze
from .server import SimulatorServer

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        prog='bricksim-server',
        description='Brick controller simulator',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bricksim-server                       # bordered 8x16 maze on port 30000
  bricksim-server --maze course.csv     # load a maze table
  bricksim-server --port 30001 --debug  # alternate port, verbose logging
        """
    )

    parser.add_argument('--host', default=config.SERVER_HOST,
                        help=f'listen address (default {config.SERVER_HOST})')
    parser.add_argument('--port', type=int, default=config.SERVER_PORT,
                        help=f'TCP port (default {config.SERVER_PORT})')
    parser.add_argument('--maze', metavar='CSV',
                        help='maze table to load (default: bordered empty maze)')
    parser.add_argument('--width', type=int, default=config.DEFAULT_MAZE_WIDTH,
                        help='cells across when no table is given')
    parser.add_argument('--height', type=int, default=config.DEFAULT_MAZE_HEIGHT,
                        help='cells down when no table is given')
    parser.add_argument('--cell-size', type=float, default=config.DEFAULT_CELL_SIZE,
                        help='cell size in inches when no table is given')
    parser.add_argument('--fast', action='store_true',
                        help='run physics as fast as possible instead of in real time')
    parser.add_argument('--log-level', default=config.LOG_LEVEL,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    parser.add_argument('--debug', action='store_true',
                        help='shorthand for --log-level DEBUG')
    parser.add_argument('--version', action='version',
                        version=f'bricksim {__version__}')

    return parser.parse_args(argv)


def build_maze(args) -> Maze:
    if args.maze:
        return Maze.load_table(args.maze)
    return Maze.bordered(args.height, args.width, args.cell_size)


def main(argv=None):
    """Entry point"""
    args = parse_args(argv)

    logging.basicConfig(
        level='DEBUG' if args.debug else args.log_level,
        format=config.LOG_FORMAT,
    )

    try:
        maze = build_maze(args)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot load maze: {e}")
        sys.exit(1)

    server = SimulatorServer(maze, host=args.host, port=args.port, realtime=not args.fast)
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        sys.exit(0)
    except OSError as e:
        logger.error(f"Server error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
