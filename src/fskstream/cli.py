"""Command-line interface for fskstream.

Decode FSK bitstreams from WAV files or live capture, generate test
signals, and list audio devices.
"""

import argparse
import logging
import sys
from typing import Optional

import numpy as np

from .modem.errors import FSKError
from .modem.fsk import BIT_RATE, MARK_FREQ, SAMPLE_RATE, SPACE_FREQ, THRESHOLD, FSKModulator
from .modem.state import DemodulationConfig
from .modem.stream import demodulate
from .modem.wav import read_wav, write_wav

logger = logging.getLogger(__name__)


def _add_channel_args(parser: argparse.ArgumentParser, sample_rate: bool = True) -> None:
    """Options shared by every command that touches an FSK channel."""
    if sample_rate:
        parser.add_argument('--sample-rate', type=int, default=SAMPLE_RATE,
                            help=f'Sample rate in Hz (default {SAMPLE_RATE})')
    parser.add_argument('--bit-rate', type=int, default=BIT_RATE,
                        help=f'Bit rate in bits/s (default {BIT_RATE})')
    parser.add_argument('--f0', type=float, default=SPACE_FREQ,
                        help=f'Tone for binary 0 in Hz (default {SPACE_FREQ})')
    parser.add_argument('--f1', type=float, default=MARK_FREQ,
                        help=f'Tone for binary 1 in Hz (default {MARK_FREQ})')


def _add_decode_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('--threshold', type=float, default=THRESHOLD,
                        help=f'Energy ratio for a confident decision (default {THRESHOLD})')
    parser.add_argument('-n', '--bits', type=int, default=None,
                        help='Expected frame length in bits')
    parser.add_argument('--skip', type=float, default=0.0,
                        help='Seconds of leading audio to discard')


def _config_from_args(args: argparse.Namespace, sample_rate: int) -> DemodulationConfig:
    return DemodulationConfig(
        sample_rate=sample_rate,
        bit_rate=args.bit_rate,
        f0=args.f0,
        f1=args.f1,
        threshold=args.threshold,
        expected_length=args.bits,
        use_skip=args.skip > 0,
        skip_seconds=args.skip,
    )


def cmd_decode(args: argparse.Namespace) -> int:
    """Decode a WAV file and print the bits."""
    samples, sample_rate = read_wav(args.file)
    config = _config_from_args(args, sample_rate)
    bits = demodulate(samples, config)
    print(bits)
    return 0


def cmd_generate(args: argparse.Namespace) -> int:
    """Write (and optionally play) an FSK signal for a bit string."""
    modulator = FSKModulator(
        sample_rate=args.sample_rate,
        space_freq=args.f0,
        mark_freq=args.f1,
        bit_rate=args.bit_rate,
        amplitude=args.amplitude,
    )
    lead = np.zeros(int(args.lead * args.sample_rate), dtype=np.float32)
    samples = np.concatenate([lead, modulator.modulate(args.bits)])

    if args.output:
        write_wav(args.output, samples, args.sample_rate)
        logger.info("Wrote %d samples to %s", len(samples), args.output)

    if args.play:
        from .modem.audio_io import AudioInterface

        audio = AudioInterface(sample_rate=args.sample_rate, output_device=args.output_device)
        audio.transmit(samples, blocking=True)
    return 0


def cmd_listen(args: argparse.Namespace) -> int:
    """Decode frames from live capture until interrupted."""
    from .modem.receiver import StreamReceiver

    config = _config_from_args(args, args.sample_rate)

    def print_frame(bits: list[int]) -> None:
        print("".join("1" if b else "0" for b in bits), flush=True)

    receiver = StreamReceiver(config, on_frame=print_frame, input_device=args.input_device)
    print(f"Listening at {config.sample_rate} Hz, {config.bit_rate} bit/s "
          f"(f0={config.f0:g} Hz, f1={config.f1:g} Hz). Ctrl+C to stop.", file=sys.stderr)

    with receiver:
        try:
            while True:
                frame = receiver.receive_frame(timeout=args.timeout)
                if frame is not None and args.repeat:
                    receiver.rearm(config.expected_length)
                elif frame is not None:
                    break
                elif config.expected_length is None:
                    pending = receiver.take_bits()
                    if pending:
                        print_frame(pending)
        except KeyboardInterrupt:
            pass
    return 0


def cmd_devices(args: argparse.Namespace) -> int:
    """Print audio devices in a formatted table."""
    from .modem.audio_io import SOUNDDEVICE_AVAILABLE, SOUNDDEVICE_ERROR, list_audio_devices

    if not SOUNDDEVICE_AVAILABLE:
        print(f"Audio ERROR: {SOUNDDEVICE_ERROR}")
        return 1

    devices = list_audio_devices()
    if not devices:
        print("No audio devices found!")
        return 1

    print("INPUT DEVICES (microphones):")
    print("-" * 60)
    inputs = [d for d in devices if d['channels_in'] > 0]
    for dev in inputs:
        default = " [DEFAULT]" if dev['default_in'] else ""
        print(f"  {dev['index']:3d}: {dev['name'][:45]:<45} {dev['sample_rate']}Hz{default}")
    if not inputs:
        print("  (none)")
    print()

    print("OUTPUT DEVICES (speakers):")
    print("-" * 60)
    outputs = [d for d in devices if d['channels_out'] > 0]
    for dev in outputs:
        default = " [DEFAULT]" if dev['default_out'] else ""
        print(f"  {dev['index']:3d}: {dev['name'][:45]:<45} {dev['sample_rate']}Hz{default}")
    if not outputs:
        print("  (none)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='fskstream',
        description='Streaming binary FSK decoder',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fskstream generate 1011 -o tone.wav     Write a test signal
  fskstream decode tone.wav -n 4          Decode 4 bits from a file
  fskstream listen -n 32 --repeat         Decode 32-bit frames from the mic
  fskstream devices                       List audio devices
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    decode_parser = subparsers.add_parser('decode', help='Decode a WAV file')
    decode_parser.add_argument('file', help='Mono WAV file')
    _add_channel_args(decode_parser, sample_rate=False)
    _add_decode_args(decode_parser)
    decode_parser.set_defaults(func=cmd_decode)

    generate_parser = subparsers.add_parser('generate', help='Generate an FSK signal')
    generate_parser.add_argument('bits', help="Bit string, e.g. 1011")
    generate_parser.add_argument('-o', '--output', help='WAV file to write')
    generate_parser.add_argument('--play', action='store_true', help='Play through speakers')
    generate_parser.add_argument('--output-device', type=int, help='Output device index')
    generate_parser.add_argument('--amplitude', type=float, default=0.8)
    generate_parser.add_argument('--lead', type=float, default=0.0,
                                 help='Seconds of leading silence')
    _add_channel_args(generate_parser)
    generate_parser.set_defaults(func=cmd_generate)

    listen_parser = subparsers.add_parser('listen', help='Decode live capture')
    listen_parser.add_argument('-i', '--input-device', type=int, help='Input device index')
    listen_parser.add_argument('--timeout', type=float, default=1.0,
                               help='Seconds between checks for pending bits')
    listen_parser.add_argument('--repeat', action='store_true',
                               help='Keep decoding frames after the first')
    _add_channel_args(listen_parser)
    _add_decode_args(listen_parser)
    listen_parser.set_defaults(func=cmd_listen)

    devices_parser = subparsers.add_parser('devices', help='List audio devices')
    devices_parser.set_defaults(func=cmd_devices)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the fskstream command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    if args.command is None:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except (FSKError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2


if __name__ == '__main__':
    sys.exit(main())
