# docker_suite.py
# Multi-node docker acceptance suite: converge docker on every host, build and
# run an nginx image per host, then check every host can reach every other one.
from __future__ import annotations

import os

from fleetcheck import (
    HostRegistry,
    apply_manifest,
    converge,
    expect_output,
    for_each_pair,
    retry,
    scenario,
    sh,
    write_file,
)
from fleetcheck import suite as make_suite

HOSTS = os.environ.get(
    "DOCKER_SUITE_HOSTS", "node1=root@192.168.56.11,node2=root@192.168.56.12"
).split(",")

MANIFEST = """
sysctl {'net.bridge.bridge-nf-call-iptables':  value => 1 }
sysctl {'net.bridge.bridge-nf-call-ip6tables': value => 1 }

class { 'docker':
  use_upstream_package_source => false,
  service_overrides_template  => false,
  selinux_enabled => 'true',
  manage_epel     => false,
  package_name    => 'docker',
  log_driver      => 'journald',
  docker_group    => 'dockerroot',
  before          => [
    Sysctl['net.bridge.bridge-nf-call-iptables'],
    Sysctl['net.bridge.bridge-nf-call-ip6tables']
  ]
}
"""

HIERADATA = """---
simp_options::trusted_nets: ['ALL']
simp_options::firewall: true
"""

DOCKERFILE = """FROM nginx
RUN echo 'Hello from Docker on SIMP. I was built on {host}' > /usr/share/nginx/html/index.html
"""


def run_manifest(host) -> str:
    return MANIFEST + f"""
docker::run {{ 'custom_nginx_{host.name}':
  image => 'custom_nginx_{host.name}',
  ports => ['80:80'],
}}
"""


def suite():
    registry = HostRegistry(HOSTS)
    return make_suite(
        scenario(
            "simp client settings",
            write_file("minimal hieradata", "/etc/puppetlabs/code/environments/production/data/common.yaml", HIERADATA),
            converge("include simp", "include 'simp'"),
        ),
        scenario(
            "set up docker on hosts",
            converge("docker", MANIFEST, parallel=True),
            sh("hello-world via cli", "docker run hello-world", parallel=True),
            write_file("nginx dockerfile", "/root/nginx/Dockerfile", lambda h: DOCKERFILE.format(host=h.name)),
            sh("build image", lambda h: f"docker build -t custom_nginx_{h.name} /root/nginx", parallel=True),
            converge("run built image", run_manifest, parallel=True),
            sh(
                "serve nginx page",
                "curl -s localhost:80",
                expect=expect_output(r"Hello from Docker on SIMP"),
                retry=retry(max_wait=60, poll_interval=2),
            ),
            sh("open port 80 (in)", "iptables -A INPUT -p tcp --dport 80 -m conntrack --ctstate NEW,ESTABLISHED -j ACCEPT"),
            sh("open port 80 (out)", "iptables -A OUTPUT -p tcp --sport 80 -m conntrack --ctstate ESTABLISHED -j ACCEPT"),
        ),
        scenario(
            "all hosts serve the nginx page on port 80",
            for_each_pair(
                "can connect",
                lambda src, dst: f"curl -s {dst.address}:80",
                registry,
                check=lambda src, dst: expect_output(
                    r"Hello from Docker on SIMP", rf"I was built on {dst.name}"
                ),
                retry=retry(max_wait=60, poll_interval=2),
            ),
        ),
    )
