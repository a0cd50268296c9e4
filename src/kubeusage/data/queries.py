# src/kubeusage/data/queries.py
"""
Monitoring Query Language texts issued against Cloud Monitoring. Each query
groups by the six container labels, in the order MetricLabels decodes them.
"""

_GROUP_BY = (
    "[resource.project_id, resource.location, resource.cluster_name,\n"
    "     resource.namespace_name, resource.pod_name, resource.container_name]"
)


def cpu_usage_time_query(resolution: str, start: str, period: str) -> str:
    """Query for kubernetes.io/container/cpu/core_usage_time as a per-second rate (cores)."""
    return (
        "fetch k8s_container\n"
        "| metric 'kubernetes.io/container/cpu/core_usage_time'\n"
        f"| align rate({resolution})\n"
        f"| every {resolution}\n"
        f"| group_by\n    {_GROUP_BY},\n"
        "    [value_core_usage_time_aggregate: aggregate(value.core_usage_time)]\n"
        f"| within {start}, {period}"
    )


def memory_used_bytes_query(resolution: str, start: str, period: str) -> str:
    """Query for kubernetes.io/container/memory/used_bytes, mean bytes per interval."""
    return (
        "fetch k8s_container\n"
        "| metric 'kubernetes.io/container/memory/used_bytes'\n"
        f"| group_by {resolution}, [value_used_bytes_mean: mean(value.used_bytes)]\n"
        f"| every {resolution}\n"
        f"| group_by\n    {_GROUP_BY},\n"
        "    [value_used_bytes_mean_mean: mean(value_used_bytes_mean)]\n"
        f"| within {start}, {period}"
    )
