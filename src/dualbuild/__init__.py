"""dualbuild -- Build a JavaScript library into ESM and CommonJS trees, one file at a time.

This package walks a library's ``src/`` tree, compiles every eligible source
file independently into two module formats, and writes a *path-mapping*
manifest per format so a custom module resolver can import the library by
public module name (``lib/Foo/bar``) no matter where the output landed.

Typical workflow::

    dualbuild build            # one-shot production build into ./dist
    dualbuild watch            # development build into ./dev, rebuild on save

Modules:
    app: Typer application factory and CLI entry point.
    models: Pydantic models shared across the entire package.
    config: Build configuration resolution and atomic file writes.
    classifier: Path eligibility and public module naming.
    manifest: Generated path-mapping modules.
    compiler: Per-file compilation through an external bundler.
    descriptor: Distributable ``package.json`` transform.
    pipeline: Production and development pipelines.
    dispatch: Non-blocking, bounded task dispatch for watch mode.
    watcher: watchdog-backed file-system event stream.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
