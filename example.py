#!/usr/bin/env python3
"""Example usage of cqlbridge.

Building a configuration only resolves host names; nothing connects until
the native cluster's ``connect()`` is called.  SSL material comes from the
``CASS_CLIENT_*`` environment variables, for example::

    export CASS_CLIENT_ENABLE_SSL=true
    export CASS_CLIENT_KEYSTORE=/etc/cassandra/client.p12
    export CASS_CLIENT_KEYSTORE_PASSWORD=changeit
    export CASS_CLIENT_TRUSTSTORE=/etc/cassandra/truststore.p12
    export CASS_CLIENT_TRUSTSTORE_PASSWORD=changeit
"""

import logging

from cqlbridge import Client

logging.basicConfig(level=logging.INFO)

URI = "jdbc:cassandra://127.0.0.1:9042/system?consistencyLevel=local_quorum"

client = Client()

# ── Inspect the configuration ───────────────────────────────────────────
config = client.cluster_config(URI, {"user": "cassandra", "password": "cassandra"})
print("contact points:", config.contact_points, "port:", config.port)
print("consistency:", config.consistency_level.name, "ssl:", config.tls is not None)

# ── Hand it to cassandra-driver ─────────────────────────────────────────
cluster = config.create_cluster()     # returns cassandra.cluster.Cluster
try:
    session = cluster.connect(config.quoted_keyspace)
    row = session.execute("SELECT release_version FROM local").one()
    print("release:", row.release_version)
finally:
    cluster.shutdown()
