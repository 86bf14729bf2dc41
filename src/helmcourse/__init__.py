"""helmcourse: declarative multi-release Helm orchestration.

A course file describes namespaces, chart releases and hooks; ``plot``
drives a cluster toward it by shelling out to helm.
"""

__version__ = "0.1.0"
