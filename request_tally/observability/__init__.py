"""Request capture and shipping.

The middleware stashes what it sees on the way in, pairs it with the response on
the way out, and the client queues the result for the collector.
"""
