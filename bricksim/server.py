"""
TCP front end: one Session task per accepted connection.
"""

import asyncio
import logging
from typing import Optional, Set

from . import config
from .config import VehicleConfig
from .maze_map import Maze
from .session import Session

logger = logging.getLogger(__name__)


class SimulatorServer:
    """
    asyncio TCP server handing each connection its own vehicle.

    Sessions share only the maze, which nothing modifies while serving.
    """

    def __init__(self, maze: Maze,
                 host: str = config.SERVER_HOST,
                 port: int = config.SERVER_PORT,
                 vehicle_config: Optional[VehicleConfig] = None,
                 realtime: bool = config.REALTIME,
                 settle_delay: float = config.CONNECTION_SETTLE_DELAY):
        self.maze = maze
        self.host = host
        self.port = port
        self.vehicle_config = vehicle_config
        self.realtime = realtime
        self.settle_delay = settle_delay

        self.sessions: Set[Session] = set()
        self._server: Optional[asyncio.AbstractServer] = None

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_connection, self.host, self.port)
        # port 0 asks the OS for a free port
        self.port = self._server.sockets[0].getsockname()[1]
        logger.info(f"Simulator listening on {self.host}:{self.port} "
                    f"({self.maze.width}x{self.maze.height} maze, {self.maze.cell_size:g} in cells)")

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        try:
            await self._server.serve_forever()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop listening and end every open session."""
        if self._server is None:
            return
        self._server.close()
        for session in list(self.sessions):
            session.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Simulator stopped")

    async def _handle_connection(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter) -> None:
        session = Session(self.maze, reader, writer,
                          vehicle_config=self.vehicle_config,
                          realtime=self.realtime,
                          settle_delay=self.settle_delay)
        self.sessions.add(session)
        try:
            await session.run()
        except Exception:
            # A broken session must not take the listener down with it.
            logger.exception(f"Session for {session.peer} failed")
        finally:
            self.sessions.discard(session)
