"""A stand-in for ITKBridgePipes used by the subprocess tests.

Speaks the bridge protocol on stdin/stdout over an in-memory 4x3x2 uint16
image whose pixel at (x, y, z) has the value x + 4*y + 12*z. Files ending
in `.fake` are readable and writable; `write` stores the received planes
raw at the given path.

Behaviour is selected with environment variables:

- FAKE_WORKER_MODE: `normal` (default), `exit-on-start`, `die-on-info`,
  `short-read`, `die-mid-write`, `silent` (never answers `canRead`)
- FAKE_WORKER_CHUNK: chunk size the host uses for writes (default 10000)
"""

import os
import struct
import sys
import time

SIZE = (4, 3, 2, 1, 1)
BYTES_PER_COMPONENT = {0: 1, 1: 1, 2: 2, 3: 2, 4: 4, 5: 4, 6: 4, 7: 8}

MODE = os.environ.get("FAKE_WORKER_MODE", "normal")
CHUNK = int(os.environ.get("FAKE_WORKER_CHUNK", "10000"))

stdin = sys.stdin.buffer
stdout = sys.stdout.buffer


def send(data: bytes) -> None:
    stdout.write(data)
    stdout.flush()


def diagnose(message: str) -> None:
    sys.stderr.write(message + "\n")
    sys.stderr.flush()


def read_exactly(count: int) -> bytes:
    data = stdin.read(count)
    if len(data) < count:
        sys.exit(2)
    return data


def info_body() -> str:
    entries = [
        ("SizeX", "4"), ("SizeY", "3"), ("SizeZ", "2"), ("SizeT", "1"), ("SizeC", "1"),
        ("PixelType", "3"),
        ("Interleaved", "false"),
        ("LittleEndian", "true"),
        ("RGBChannelCount", "1"),
        ("PixelsPhysicalSizeX", "0.5"),
        ("PixelsPhysicalSizeY", "0.5"),
        ("PixelsPhysicalSizeZ", "2.0"),
        ("PixelsPhysicalSizeT", "1.0"),
        ("PixelsPhysicalSizeC", "1.0"),
        ("Description", "first line\\nC:\\\\data"),
        ("SizeX", "999"),
    ]
    return "".join(f"{key}\n{value}\n" for key, value in entries) + "\n"


def handle_read(fields):
    pairs = [(int(fields[i]), int(fields[i + 1])) for i in range(2, 12, 2)]
    (x0, nx), (y0, ny), (z0, nz) = pairs[0], pairs[1], pairs[2]
    values = [
        x + 4 * y + 12 * z
        for z in range(z0, z0 + nz)
        for y in range(y0, y0 + ny)
        for x in range(x0, x0 + nx)
    ]
    payload = struct.pack(f"<{len(values)}H", *values)
    diagnose(f"reading {fields[1]}")
    if MODE == "short-read":
        send(payload[:len(payload) // 2])
        sys.exit(1)
    half = len(payload) // 2
    send(payload[:half])
    send(payload[half:])


def handle_write(fields):
    path = fields[1]
    sizes = [int(s) for s in fields[4:9]]
    pixel_type = int(fields[14])
    components = int(fields[15])
    bytes_per_plane = sizes[0] * sizes[1] * components * BYTES_PER_COMPONENT[pixel_type]
    num_planes = sizes[2] * sizes[3] * sizes[4]
    send(f"{bytes_per_plane}\n\n".encode("ascii"))

    received = bytearray()
    for plane in range(num_planes):
        got = 0
        while got < bytes_per_plane:
            count = min(CHUNK, bytes_per_plane - got)
            received += read_exactly(count)
            got += count
            if MODE == "die-mid-write" and plane == 1:
                sys.exit(1)
            if got < bytes_per_plane:
                send(b"ok\n\n")
        if plane == num_planes - 1:
            # stored before the last acknowledgement so the host sees the file
            with open(path, "wb") as f:
                f.write(received)
        # the last chunk and plane acknowledgements go out in one write
        send(b"ok\n\nplane\n\n")


def main():
    if MODE == "exit-on-start":
        diagnose("cannot find the SCIFIO classes")
        sys.exit(3)

    while True:
        line = stdin.readline()
        if not line:
            return
        fields = line.decode("utf-8").rstrip("\n").split("\t")
        verb = fields[0]

        if verb == "canRead":
            if MODE == "silent":
                time.sleep(30)
            send(f"{str(fields[1].endswith('.fake')).lower()}\n\n".encode("ascii"))
        elif verb == "canWrite":
            diagnose(f"checking {fields[1]}")
            send(f"{str(fields[1].endswith('.fake')).lower()}\n\n".encode("ascii"))
        elif verb == "info":
            body = info_body()
            if MODE == "die-on-info":
                send(body[:20].encode("utf-8"))
                diagnose("out of memory")
                sys.exit(1)
            send(body.encode("utf-8"))
        elif verb == "read":
            handle_read(fields)
        elif verb == "write":
            handle_write(fields)
        else:
            diagnose(f"unknown command {verb}")


if __name__ == "__main__":
    main()
