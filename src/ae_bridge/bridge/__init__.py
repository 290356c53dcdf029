"""File-queue bridge between short-lived CLI processes and the After Effects host.

Why not a socket or an RPC server?
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~
After Effects exposes no addressable endpoint. The only way in is an
``osascript`` call that asks the host to run a script file, and the only
thing that runs continuously inside the host is a startup script armed with
``app.scheduleTask``. Everything in this package is built around that:

- commands are written as files (job descriptors or legacy queue entries)
  with temp-then-rename so the host never reads half a file;
- the host-side consumer drains at most one file per tick, skips ticks
  while the user has layers selected, and sweeps anything older than the
  TTL;
- the producer side either runs a throwaway script directly in the live
  session or writes a job and polls for its artifact with a hard deadline.
"""
