"""
Transport - UDP endpoints for the WFS control protocol.

Owns two sockets:
- Receive: ParameterServer bound to 0.0.0.0:<incoming_port>, served by one
  background thread. Every datagram is decoded on its own; a malformed
  datagram is logged and counted and the loop carries on.
- Send: ParameterClient aimed at <remote_host>:<outgoing_port>. Fire and
  forget, no acknowledgement.

start()/stop() are idempotent and can be called back to back when network
settings are applied.
"""

import threading
from typing import Optional


from wfsctl import codec, osc
from wfsctl.config import NetworkConfig
from wfsctl.dispatcher import ParameterDispatcher
from wfsctl.errors import BindError, DecodeError, SendError
from wfsctl.log import get_logger

logger = get_logger(__name__)

RECEIVE_ADDRESS = "0.0.0.0"


class _DatagramRouter:
    """Dispatcher adapter for ParameterServer.

    Implements pythonosc's call_handlers_for_packet() entry point using the
    strict codec, so decode failures never reach the socketserver machinery.
    """

    def __init__(self, dispatcher: ParameterDispatcher, stats: osc.MessageStatistics):
        self._dispatcher = dispatcher
        self._stats = stats

    def call_handlers_for_packet(self, data: bytes, client_address) -> list:
        self._stats.increment('received_datagrams')
        try:
            message = codec.decode(data)
        except DecodeError as e:
            self._stats.increment('decode_errors')
            logger.warning(f"Dropped malformed datagram from {client_address[0]} ({len(data)} bytes): {e}")
            return []

        try:
            self._dispatcher.route(message)
        except Exception as e:
            logger.error(f"Routing {message.address} failed: {e}", exc_info=True)
        # No replies are sent from the receive socket
        return []


class Transport:
    """UDP send/receive endpoints with an explicit start/stop lifecycle.

    Args:
        dispatcher: Routes decoded incoming messages
        stats: Optional shared statistics tracker

    Attributes:
        config (NetworkConfig): Settings of the current (or last) run
        stats (osc.MessageStatistics): received/decode/sent/send error counters
    """

    def __init__(self, dispatcher: ParameterDispatcher, stats: Optional[osc.MessageStatistics] = None):
        self.stats = stats if stats is not None else osc.MessageStatistics()
        self._router = _DatagramRouter(dispatcher, self.stats)
        self._lock = threading.Lock()
        self._server: Optional[osc.ParameterServer] = None
        self._server_thread: Optional[threading.Thread] = None
        self._client: Optional[osc.ParameterClient] = None
        self.config: Optional[NetworkConfig] = None

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def local_port(self) -> Optional[int]:
        """Port the receive socket is actually bound to, None when stopped."""
        server = self._server
        return server.server_address[1] if server is not None else None

    def start(self, config: NetworkConfig) -> None:
        """Bind the receive socket, open the send socket, start receiving.

        No-op if already running (call stop() first to change settings).

        Raises:
            BindError: Receive port in use, or send socket could not be opened.
                       The transport is left stopped.
        """
        with self._lock:
            if self._server is not None:
                logger.debug("Transport already running")
                return

            try:
                server = osc.ParameterServer((RECEIVE_ADDRESS, config.incoming_port), self._router)
            except OSError as e:
                logger.error(f"Cannot listen on UDP port {config.incoming_port}: {e}")
                raise BindError(config.incoming_port, e) from e

            try:
                client = osc.ParameterClient(config.remote_host, config.outgoing_port)
            except OSError as e:
                server.server_close()
                logger.error(f"Cannot open send socket to {config.remote_host}:{config.outgoing_port}: {e}")
                raise BindError(config.outgoing_port, e) from e

            thread = threading.Thread(
                target=server.serve_forever,
                kwargs={'poll_interval': osc.SERVER_POLL_INTERVAL_S},
                name="wfsctl-receive",
                daemon=True,
            )
            thread.start()

            self._server = server
            self._server_thread = thread
            self._client = client
            self.config = config

        logger.info(
            f"Listening on {RECEIVE_ADDRESS}:{server.server_address[1]}, "
            f"sending to {config.remote_host}:{config.outgoing_port}"
        )

    def send(self, message: codec.OscMessage) -> None:
        """Encode and send one message to the WFS server.

        Raises:
            EncodeError: Message cannot be serialized
            SendError: Not running, or the socket write failed
        """
        dgram = codec.encode(message)
        client = self._client
        if client is None:
            raise SendError(f"Transport not running, cannot send {message.address}")

        try:
            client.send_datagram(dgram)
        except OSError as e:
            self.stats.increment('send_errors')
            raise SendError(f"Send {message.address} failed: {e}") from e

        self.stats.increment('sent_messages')

    def stop(self, timeout: float = 2.0) -> None:
        """Stop receiving and close both sockets (no-op if stopped).

        Holds the lifecycle lock until the port is released, so a start()
        right after stop() can bind the same port again.
        """
        with self._lock:
            server, thread, client = self._server, self._server_thread, self._client
            if server is None:
                return
            self._server = None
            self._server_thread = None
            self._client = None

            server.shutdown()
            server.server_close()
            if thread is not None:
                thread.join(timeout=timeout)
            if client is not None:
                client.close()

        logger.info("Transport stopped")


def send_once(address: str, args, host: str = osc.DEFAULT_REMOTE_HOST,
              port: int = osc.PORT_OUTGOING) -> bytes:
    """Encode and send a single message without starting a Transport.

    Returns:
        The datagram that was sent

    Raises:
        EncodeError: Bad address or arguments
        SendError: Socket failure
    """
    dgram = codec.encode(codec.OscMessage(address, codec.to_arguments(args)))
    try:
        with osc.ParameterClient(host, port) as client:
            client.send_datagram(dgram)
    except OSError as e:
        raise SendError(f"Send {address} to {host}:{port} failed: {e}") from e
    return dgram
