"""YAML-driven API test runner.

The `testkit` package runs declarative test documents against HTTP
APIs. A document describes an ordered list of requests together with
assertions on their responses and values captured for later steps.

Documents are named `*.tk.yaml` and can be run with the `testkit`
command or collected by pytest through the bundled plugin.
"""
