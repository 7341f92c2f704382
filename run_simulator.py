#!/usr/bin/env python3
"""
Run the camera simulator.

Usage:
    python run_simulator.py [--port PORT] [--product PRODUCT] [--interval SECONDS]

Examples:
    python run_simulator.py                          # Interactive on 0.0.0.0:8500
    python run_simulator.py --interval 1.0           # One packet per second
    python run_simulator.py --interval 0.5 --ng-rate 0.1

Interactive commands: o (OK), n (NG), r (power cycle), d (drop client), q (quit)
"""

import argparse
import os
import random
import sys
import threading

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from production_counter.simulator.CameraSimulator import CameraSimulator


def auto_send(sim: CameraSimulator, interval: float, ng_rate: float, stop_event: threading.Event):
    while not stop_event.wait(interval):
        if not sim.has_client:
            continue
        text = sim.ng() if random.random() < ng_rate else sim.ok()
        print(f"Sent: {text}")


def main():
    parser = argparse.ArgumentParser(description="Camera counter simulator")
    parser.add_argument('--host', default='0.0.0.0', help='Host to bind (default: 0.0.0.0)')
    parser.add_argument('--port', type=int, default=8500, help='Port to bind (default: 8500)')
    parser.add_argument('--product', default='SIM', help='Product ID to send (default: SIM)')
    parser.add_argument('--interval', type=float, default=None, help='Send automatically every N seconds')
    parser.add_argument('--ng-rate', type=float, default=0.05, help='Fraction of NG packets in auto mode')

    args = parser.parse_args()

    sim = CameraSimulator(host=args.host, port=args.port, product_id=args.product)
    port = sim.start()

    print("=" * 60)
    print("Camera Simulator")
    print("=" * 60)
    print(f"Listening on {args.host}:{port}")
    print("Commands: o=OK  n=NG  r=power cycle  d=drop client  q=quit")
    print("=" * 60)

    stop_event = threading.Event()
    if args.interval:
        threading.Thread(
            target=auto_send,
            args=(sim, args.interval, args.ng_rate, stop_event),
            daemon=True
        ).start()

    try:
        for line in sys.stdin:
            cmd = line.strip().lower()
            if cmd == "o":
                print(f"Sent: {sim.ok()}")
            elif cmd == "n":
                print(f"Sent: {sim.ng()}")
            elif cmd == "r":
                sim.power_cycle()
                print("Counters reset")
            elif cmd == "d":
                sim.drop_client()
            elif cmd == "q":
                break
            elif cmd:
                print(f"Unknown command: {cmd}")
    except KeyboardInterrupt:
        pass
    finally:
        stop_event.set()
        sim.stop()


if __name__ == '__main__':
    main()
