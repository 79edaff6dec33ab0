# etherrecorder

etherrecorder connects to a TCP server and writes whatever that server sends
to its log, laid out as rows of hex. The connection is retried with
exponential backoff, from 1 second up to 32 seconds. If the link drops, the
client reconnects. While it runs, it also listens on a port for framed
commands. One of these commands changes the log level without a restart.

## Installation

```
pip install .
```

## Running

```
etherrecorder                   # reads config.ini from the current directory
etherrecorder -c settings.ini   # use another configuration file
etherrecorder -h                # show usage
```

If the configuration file cannot be loaded, the program says so and starts
with its default settings. It starts three threads:

- `CLIENT` receives data and logs it.
- `COMMAND_INTERFACE` accepts commands.
- `LOGGER` publishes queued log entries.

It runs until every thread has finished. Press Ctrl-C to ask the threads to
stop.

Received bytes are logged as rows of four columns, with four bytes per column.
A row that is only partly filled shows dots in the positions that are empty.
The position within a row carries over from one receive to the next.

## Configuration

The configuration is an INI-style file:

- Sections are written as `[section]`.
- Entries are written as `key = value`.
- Comments start with `;` or `#`. A comment marker inside quotes does not start a comment.
- Section and key names are matched without regard to case.
- If a key appears more than once, the later entry wins.

```ini
[network]
client.server_hostname = 127.0.0.2
client.port = 4200
client.send_interval_ms = 2000
client.send_test_data = false   ; when true, send 1000 zero bytes every interval

[command_interface]
listening_port = 4100

[logger]
log_level = info                ; applied as each worker thread starts
log_destination = both          ; file, console or both (default: console)
timestamp_granularity = microsecond
ansi_colours = true
log_leading_zeros = 12
log_file_size = 10485760        ; rotate the file once it reaches this size
log_file_path = logs
log_file_name = app.log
purge_logs_on_restart = false   ; true truncates log files instead of appending
CLIENT.log_file_name = client.log

[debug]
suppress_threads = CLIENT       ; comma-separated thread labels not to start
```

A true/false setting accepts any of these values:

| True   | False   |
|--------|---------|
| `true` | `false` |
| `yes`  | `no`    |
| `on`   | `off`   |
| `1`    | `0`     |

### Level names

Log levels, from least to most severe:

| Level      | Other names accepted |
|------------|----------------------|
| `trace`    |                      |
| `debug`    |                      |
| `info`     |                      |
| `notice`   |                      |
| `warn`     | `warning`            |
| `error`    | `err`                |
| `critical` |                      |
| `fatal`    | `fatal error`        |

### Timestamp granularity

`timestamp_granularity` takes one of these values. The default is
`nanosecond`.

- `nanosecond`
- `microsecond`
- `millisecond`
- `centisecond`
- `decisecond`
- `second`

### Log file rotation

When a log file reaches `log_file_size`, it is renamed to
`log_YYYY-MM-DD.txt.old` in the same directory, and a new file is started.

## Command protocol

Commands are sent to the command interface port as big-endian framed packets:

```
0xBAADF00D (4) | total length = 16 + body (4) | index (4) | body | 0xDEADBEEF (4)
```

- The total length must lie between 16 and 2016 bytes.
- Each command is answered with an `ACK <index>` packet in the same framing.
- A malformed packet resets the parser and discards any buffered data.

Recognised commands:

- `log_level = <level>` sets the logging threshold. Spaces around the key,
  the `=` and the level name are allowed. The level names accepted are:
  - `trace`
  - `debug`
  - `info`
  - `notice`
  - `warn`
  - `warning`
  - `error`
  - `critical`
  - `fatal`
- `SOME_COMMAND` is accepted and logged.

Any other command is logged as unknown.

## Library use

```python
from etherrecorder.config import Config
from etherrecorder.command_interface import CommandProtocol, build_packet
from etherrecorder.client import HexRowFormatter

config = Config()
config.read_lines(["[logger]", "log_level = debug"])
print(config.get_string("logger", "log_level", "info"))   # debug

received = []
protocol = CommandProtocol(received.append)
acks = protocol.feed(build_packet(1, "log_level = warn"))
print(received)  # ['log_level = warn']

print(HexRowFormatter().format(b"\x01\x02"))
# ['0102.... ........ ........ ........ ']
```

The package also has these modules:

- `etherrecorder.sockets` frames and unframes little-endian packets
  (`PacketStream`, `generate_random_data`, `find_marker_in_buffer`). It also
  sets up sockets (`setup_socket`, `connect_with_timeout`).
- `etherrecorder.logger.Logger` is the thread-aware logger. It supports
  per-thread log files.

## What it does not do

etherrecorder is only a client and a command listener. It has no server that
produces or serves the traffic it records. The packet framing helpers in
`etherrecorder.sockets` are not used by the running program.