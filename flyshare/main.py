#main.py  ==  command line entry point
           #↳ parses send / receive
           #↳ picks the connection mode
           #↳ gets or generates the password
           #↳ runs one Peer session and maps errors to exit codes
import sys
import argparse
import getpass
import logging

from flyshare import __version__
from flyshare.config import load_config
from flyshare.crypto.session import generate_password
from flyshare.peer.connection import Listen, describe_mode, determine_connection_mode
from flyshare.peer.peer import Peer
from flyshare.protocol.errors import TransferError
from flyshare.utils.helpers import setup_logging

logger = logging.getLogger(__name__)


def build_parser():
    parser = argparse.ArgumentParser(
        prog="flyshare",
        description="Simple encrypted file transfer tool with automatic peer discovery",
    )
    parser.add_argument("--config", default="config.yaml", help="YAML config file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    send = sub.add_parser("send", help="send a file or directory")
    send.add_argument("path")
    send.add_argument("-r", "--recursive", action="store_true", help="send a directory")
    send.add_argument("-p", "--persistent", action="store_true",
                      help="keep serving sessions after each transfer")

    receive = sub.add_parser("receive", help="receive files")
    receive.add_argument("-o", "--output", default=None, help="output directory")

    for p in (send, receive):
        mode = p.add_mutually_exclusive_group()
        mode.add_argument("-l", "--listen", action="store_true", help="wait for the peer to connect")
        mode.add_argument("-c", "--connect", metavar="IP", help="connect directly to IP")
        p.add_argument("--port", type=int, default=None)
        p.add_argument("password", nargs="?")
    return parser


def get_or_prompt_password(mode, password):
    if password:
        return password
    if isinstance(mode, Listen):
        return generate_password()
    return getpass.getpass("Please enter password: ").strip()


def choose_peer(candidates):
    for i, candidate in enumerate(candidates, 1):
        print(f"  {i}) {candidate}")
    while True:
        choice = input(f"Select peer [1-{len(candidates)}]: ").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(candidates):
            return candidates[int(choice) - 1]
        print("Invalid choice.")


def print_session_info(command, password, mode, output_dir=None):
    print("===========================================")
    print("Flyshare - File Transfer Tool")
    print("===========================================")
    print(f"Mode: {command.upper()}")
    print(f"Password: {password}")
    if output_dir is not None:
        print(f"Output directory: {output_dir}")
    print(f"Connection: {describe_mode(mode)}")
    print("===========================================")


def parse_args(argv=None):
    parser = build_parser()
    # a password after options lands in the leftovers, not in the positional
    args, extra = parser.parse_known_args(argv)
    if extra:
        if len(extra) != 1 or args.password is not None or extra[0].startswith("-"):
            parser.error(f"unrecognized arguments: {' '.join(extra)}")
        args.password = extra[0]
    return args


def main(argv=None):
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Error: could not load config: {e}", file=sys.stderr)
        return 1
    setup_logging("DEBUG" if args.verbose else config["log_level"])
    if args.port is not None:
        config["port"] = args.port

    mode = determine_connection_mode(args.listen, args.connect)
    peer = Peer(config, chooser=choose_peer)

    try:
        password = get_or_prompt_password(mode, args.password)
        if args.command == "send":
            print_session_info("send", password, mode)
            peer.send(args.path, password, mode, recursive=args.recursive, persistent=args.persistent)
        else:
            output_dir = args.output or config["output_dir"]
            print_session_info("receive", password, mode, output_dir)
            peer.receive(output_dir, password, mode)
    except TransferError as e:
        logger.debug("Session failed", exc_info=True)
        print(f"\nError: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130
    except EOFError:
        print("\nError: standard input closed", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
