# fenrir

`fenrir` sends the records of Python's standard `logging` module to a
Loki instance. Records are labelled, buffered, and pushed in batches to
the endpoint's `/loki/api/v1/push` route.

The package has no runtime dependencies beyond the standard library.

## Modules

* `fenrir.types` – the enums `AuthenticationMethod`, `NetworkingBackend`
  and `SerializationFormat`, the `Stream` and `SerializedEvent`
  structures, and the serializers `serialize_json`, `serialize_noop` and
  `serializer_for`.
* `fenrir.backends` – the transports `NoopBackend`, `HttpBackend` and
  `AsyncHttpBackend`, the `BackendError` exception, and the helpers
  `push_url` and `basic_credentials`.
* `fenrir.logger` – the `Fenrir` logging handler, its `FenrirBuilder`,
  and `ConfigurationError`.
* `fenrir.demo` – the `fenrir-demo` command.

## Building a handler

A `Fenrir` handler is created through `Fenrir.builder()` and is used like
any other logging handler:

```python
import logging

from fenrir.logger import Fenrir
from fenrir.types import NetworkingBackend, SerializationFormat

handler = (
    Fenrir.builder()
    .endpoint("http://localhost:3100")
    .network(NetworkingBackend.HTTP)
    .format(SerializationFormat.JSON)
    .include_level()
    .tag("service", "my-service")
    .flush_threshold(100)
    .build()
)

logging.getLogger().addHandler(handler)
logging.getLogger().setLevel(logging.DEBUG)

logging.info("This is an INFO message")
```

The builder starts from these defaults:

* endpoint `http://localhost:3100`;
* networking backend `NetworkingBackend.NONE` (records are discarded)
  and serialization format `SerializationFormat.NONE` (an empty body);
* `AuthenticationMethod.NONE`;
* a flush threshold of 100 records;
* no limit on the size of a single message.

`.endpoint(url)` raises `ConfigurationError` for a URL without a scheme
or host.

### Networking backends

`.network(...)` takes a member of `NetworkingBackend`:

* `NONE` – a `NoopBackend` that discards every batch;
* `HTTP` – an `HttpBackend` that posts each batch with a 10 second
  timeout and waits for the reply; a failed request raises
  `BackendError`;
* `ASYNC_HTTP` – an `AsyncHttpBackend` that schedules the post on an
  asyncio event loop and returns a `concurrent.futures.Future` resolving
  to `True` or `False`. Failures other than 4xx replies are retried up to
  3 times; a final failure is logged on the `fenrir.backends` logger.
  The loop is the one given to `.event_loop(loop)`, or the running loop
  taken by `.event_loop_current()`; without either, `.build()` uses the
  running loop and raises `ConfigurationError` when there is none.

`.format(...)` takes a member of `SerializationFormat`: `JSON` produces
the Loki push body `{"streams": [...]}`; `NONE` produces an empty body.

### Labels

* `.tag(name, value)` attaches a fixed label to every record; tags
  override the built-in labels of the same name.
* `.include_level()` adds a `level` label holding the record's level
  name (for example `WARNING`).
* `.include_framework()` adds the label `logging_framework=fenrir`. It
  issues a `DeprecationWarning`; `tag` does the same job.
* A mapping passed as `extra={"labels": {...}}` with a record becomes
  labels of that record's stream. Booleans are written `true`/`false`,
  other values with `str()`.

### Message body

By default each entry is the record formatted by the handler's
formatter. With `.json_event_format()` each entry is a JSON object
holding the `file`, `line`, `module`, `level`, `target` (logger name)
and `message` of the record.

`.max_message_size(size)` drops any entry whose UTF-8 encoding is longer
than `size` bytes; `None` removes the limit.

### Authentication

`.with_authentication(method, username, password)` takes a member of
`AuthenticationMethod`. With `BASIC` the credentials are base64-encoded
and sent in an `Authorization: Basic ...` header on every push. The
`NoopBackend` carries no credentials.

### Validation

`.build()` creates the handler with whatever was configured.
`.build_with_validation()` first raises `ConfigurationError` when no
networking backend or no serialization format was chosen, or when the
async backend was chosen without an event loop. A flush threshold or
maximum message size of zero or less is rejected as soon as it is set.

## Flushing

Records are pushed once `flush_threshold` of them are buffered.
`handler.flush()` pushes whatever is waiting, and `handler.pending()`
returns copies of the buffered `Stream` objects. Closing the handler
(for example through `logging.shutdown()`) flushes it first. When a
flush fails to serialize or send, `BackendError` is raised if
`logging.raiseExceptions` is true and ignored otherwise.

Records from the `urllib`, `urllib3`, `http.client` and
`fenrir.backends` loggers are never buffered, so the transport cannot
feed back into the handler.

## Trying it out

The `fenrir-demo` command logs one message at each level (including a
`TRACE` level of 5) to a Loki endpoint:

```
fenrir-demo --help
fenrir-demo --endpoint http://localhost:3100 --network http --console
```

Options: `--endpoint`, `--network {none,http,async_http}`,
`--username` and `--password` (given together, for basic
authentication), `--service` (the `service` label, default
`simple-logging`), `--console` (also print to standard output, at DEBUG
and above) and `--structured` (attach per-message labels). It exits with
status 1 when the logs cannot be delivered.

## What it does not do

The handler only pushes logs; it does not query Loki, read logs back or
keep anything on disk. Unsent records live in memory until they are
flushed, and only JSON is available as a wire format.