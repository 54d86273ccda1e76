"""
pytest fixtures for testing `imapauth`
"""
# System imports
#
import base64
import shlex
import socket
import socketserver
import ssl
import threading
from typing import Dict, List, Optional

# 3rd party imports
#
import pytest
import trustme

# project imports
#
from ..constants import TransportError
from ..transport import ConnectionConfig, ProbeResult
from .factories import ConnectionConfigFactory


##################################################################
##################################################################
#
class FakeTransport:
    """
    Stands in for IMAPTransport. Records what it was asked to do and how
    many times it was closed.
    """

    ##################################################################
    #
    def __init__(
        self,
        config: ConnectionConfig,
        code=TransportError.OK,
        message: str = "",
        exc: Optional[BaseException] = None,
    ):
        self.config = config
        self.code = code
        self.message = message
        self.exc = exc
        self.probes: List[tuple] = []
        self.closes = 0

    ##################################################################
    #
    def probe(self, username: str, password: str) -> ProbeResult:
        self.probes.append((username, password))
        if self.exc is not None:
            raise self.exc
        return ProbeResult(self.code, self.message)

    ##################################################################
    #
    def close(self) -> None:
        self.closes += 1


##################################################################
##################################################################
#
class FakeTransportFactory:
    """
    A transport factory that hands out FakeTransports that all report the
    same code (or raise the same exception) and remembers every one it made.
    """

    ##################################################################
    #
    def __init__(self, code=TransportError.OK, message="", exc=None):
        self.code = code
        self.message = message
        self.exc = exc
        self.transports: List[FakeTransport] = []

    ##################################################################
    #
    def __call__(self, config: ConnectionConfig) -> FakeTransport:
        transport = FakeTransport(config, self.code, self.message, self.exc)
        self.transports.append(transport)
        return transport


####################################################################
#
@pytest.fixture
def fake_transport_factory():
    """
    Returns a function that makes a FakeTransportFactory.
    """

    def make_factory(code=TransportError.OK, message="", exc=None):
        return FakeTransportFactory(code=code, message=message, exc=exc)

    return make_factory


####################################################################
#
@pytest.fixture
def connection_config():
    return ConnectionConfigFactory()


####################################################################
#
@pytest.fixture(scope="session")
def ssl_certs():
    """
    Creates certificates using `trustme`. What is returned is a tuple of a
    `trustme.CA()` instance, and the `trustme` issued server cert.
    """
    ca = trustme.CA()
    server_cert = ca.issue_cert("127.0.0.1", "localhost", "::1")
    return (ca, server_cert)


####################################################################
#
@pytest.fixture
def server_ssl_context(ssl_certs):
    _, server_cert = ssl_certs
    ssl_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    server_cert.configure_cert(ssl_context)
    return ssl_context


####################################################################
#
@pytest.fixture
def client_ssl_context(ssl_certs):
    ca, _ = ssl_certs
    ssl_context = ssl.create_default_context()
    ca.configure_trust(ssl_context)
    return ssl_context


####################################################################
#
@pytest.fixture
def unused_port():
    """
    A port on localhost that nothing is listening on.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    return port


##################################################################
##################################################################
#
class FakeIMAPHandler(socketserver.StreamRequestHandler):
    """
    Just enough of an IMAP server to satisfy imaplib's greeting,
    CAPABILITY, STARTTLS, LOGIN, AUTHENTICATE PLAIN, and LOGOUT.
    """

    server: "FakeIMAPServer"

    ##################################################################
    #
    def setup(self):
        if self.server.ssl_context is not None:
            self.request = self.server.ssl_context.wrap_socket(
                self.request, server_side=True
            )
        super().setup()

    ##################################################################
    #
    def send(self, line: str) -> None:
        self.wfile.write(line.encode("utf-8") + b"\r\n")

    ##################################################################
    #
    def capabilities(self) -> str:
        caps = ["IMAP4rev1", "AUTH=PLAIN"]
        if self.server.starttls_context is not None and not self.tls_started:
            caps.append("STARTTLS")
        return " ".join(caps)

    ##################################################################
    #
    def handle(self):
        server = self.server
        self.tls_started = False
        if server.silent:
            # Never say anything. The client should time out.
            #
            server.stop_event.wait(10)
            return

        self.send(server.greeting)
        while True:
            line = self.rfile.readline()
            if not line:
                return
            parts = line.decode("utf-8").rstrip("\r\n").split(" ", 2)
            tag, cmd = parts[0], parts[1].upper()
            args = parts[2] if len(parts) > 2 else ""
            server.commands.append(cmd)

            if cmd == "CAPABILITY":
                if server.fail_capability and server.authenticated:
                    self.send(f"{tag} NO CAPABILITY not today")
                    continue
                self.send(f"* CAPABILITY {self.capabilities()}")
                self.send(f"{tag} OK CAPABILITY completed")
            elif cmd == "STARTTLS" and server.starttls_context is not None:
                self.send(f"{tag} OK Begin TLS negotiation now")
                self.connection = server.starttls_context.wrap_socket(
                    self.connection, server_side=True
                )
                self.rfile = self.connection.makefile("rb")
                self.wfile = self.connection.makefile("wb", buffering=0)
                self.tls_started = True
            elif cmd == "LOGIN":
                username, password = shlex.split(args)
                if server.users.get(username) == password:
                    server.authenticated = True
                    self.send(f"{tag} OK LOGIN completed")
                else:
                    self.send(f"{tag} NO [{server.login_resp_code}] Nope")
            elif cmd == "AUTHENTICATE" and args.upper() == "PLAIN":
                self.send("+ ")
                response = base64.b64decode(self.rfile.readline().strip())
                _, username, password = response.decode("utf-8").split("\x00")
                if server.users.get(username) == password:
                    server.authenticated = True
                    self.send(f"{tag} OK AUTHENTICATE completed")
                else:
                    self.send(f"{tag} NO [{server.login_resp_code}] Nope")
            elif cmd == "LOGOUT":
                self.send("* BYE Fake IMAP server logging out")
                self.send(f"{tag} OK LOGOUT completed")
                return
            else:
                self.send(f"{tag} BAD Unknown command")


##################################################################
##################################################################
#
class FakeIMAPServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    ##################################################################
    #
    def __init__(
        self,
        users: Dict[str, str],
        ssl_context: Optional[ssl.SSLContext] = None,
        starttls_context: Optional[ssl.SSLContext] = None,
        silent: bool = False,
        fail_capability: bool = False,
        login_resp_code: str = "AUTHENTICATIONFAILED",
        greeting: str = "* OK Fake IMAP server ready",
    ):
        super().__init__(("127.0.0.1", 0), FakeIMAPHandler)
        self.users = users
        self.ssl_context = ssl_context
        self.starttls_context = starttls_context
        self.silent = silent
        self.fail_capability = fail_capability
        self.login_resp_code = login_resp_code
        self.greeting = greeting
        self.authenticated = False
        self.commands: List[str] = []
        self.stop_event = threading.Event()
        self.thread = threading.Thread(target=self.serve_forever, daemon=True)

    ##################################################################
    #
    @property
    def host(self) -> str:
        return self.server_address[0]

    ##################################################################
    #
    @property
    def port(self) -> int:
        return self.server_address[1]

    ##################################################################
    #
    def start(self) -> "FakeIMAPServer":
        self.thread.start()
        return self

    ##################################################################
    #
    def stop(self) -> None:
        self.stop_event.set()
        self.shutdown()
        self.server_close()
        self.thread.join(timeout=5.0)


####################################################################
#
@pytest.fixture
def imap_server():
    """
    Returns a function that starts a fake IMAP server in a separate thread.
    Keyword arguments are passed to FakeIMAPServer. All servers started are
    shut down when the test is done.
    """
    servers: List[FakeIMAPServer] = []

    def make_server(users: Optional[Dict[str, str]] = None, **kwargs):
        server = FakeIMAPServer(users if users else {}, **kwargs)
        servers.append(server)
        return server.start()

    yield make_server

    for server in servers:
        server.stop()
