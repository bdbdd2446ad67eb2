"""kubenotify: Slack notifications for Kubernetes workload rollouts."""

__version__ = "0.1.0"
