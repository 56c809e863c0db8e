"""Reverse-proxy configuration for web-exposed services."""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from homelab.core.domains import domain_env_var
from homelab.core.logger import get_logger
from homelab.core.rendering import generated_header, render_template
from homelab.models.service import Service

logger = get_logger(__name__)

INCLUDES_DIR = "/etc/nginx/conf.d/includes"

SERVER_TEMPLATE = """{{ header }}
# {{ service.display_name }}

server {
    listen 80;
    listen [::]:80;
    server_name {{ server_name }};

    return 301 https://$host$request_uri;
}

server {
    listen 443 ssl;
    listen [::]:443 ssl;
    server_name {{ server_name }};

    include {{ includes_dir }}/ssl;

{% if additional_config %}
{{ additional_config | indent(4, first=True) }}
{% else %}
    location / {
        include {{ includes_dir }}/proxy;
        proxy_pass http://{{ upstream }};
    }
{% endif %}

    access_log off;
    error_log /var/log/nginx/error.log error;
}
"""

MAIN_TEMPLATE = """{{ header }}
user nginx;
worker_processes auto;
error_log /var/log/nginx/error.log warn;
pid /var/run/nginx.pid;

events {
    worker_connections 1024;
}

http {
    include /etc/nginx/mime.types;
    default_type application/octet-stream;
    sendfile on;
    keepalive_timeout 65;
    client_max_body_size 0;
    server_tokens off;
    resolver 127.0.0.11 valid=30s;

    server {
        listen 80 default_server;
        listen [::]:80 default_server;

        location /health {
            access_log off;
            add_header Content-Type text/plain;
            return 200 "healthy\\n";
        }
    }

    include /etc/nginx/conf.d/*.conf;
}
"""

SSL_INCLUDE = """{{ header }}
ssl_certificate {{ certificate }};
ssl_certificate_key {{ certificate_key }};
ssl_protocols TLSv1.2 TLSv1.3;
ssl_prefer_server_ciphers off;
ssl_session_cache shared:SSL:10m;
ssl_session_timeout 1d;
"""

PROXY_INCLUDE = """{{ header }}
proxy_http_version 1.1;
proxy_set_header Host $host;
proxy_set_header X-Real-IP $remote_addr;
proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
proxy_set_header X-Forwarded-Proto $scheme;
proxy_set_header Upgrade $http_upgrade;
proxy_set_header Connection "upgrade";
proxy_read_timeout 300s;
"""


@dataclass
class NginxConfigBlock:
    """Generated server configuration for one service."""

    service_key: str
    env_var: str
    content: str
    custom: bool = False

    @property
    def filename(self) -> str:
        return f"{self.service_key}.conf.template"


@dataclass
class NginxBundle:
    """Everything the reverse proxy needs for one deployment scope."""

    blocks: List[NginxConfigBlock] = field(default_factory=list)
    external: Dict[str, str] = field(default_factory=dict)
    main_config: str = ""
    includes: Dict[str, str] = field(default_factory=dict)

    @property
    def routed_services(self) -> List[str]:
        """Services reachable through the proxy, generated or external."""
        return [block.service_key for block in self.blocks] + list(self.external)

    def files(self) -> Dict[str, str]:
        """Relative path -> content, as laid out under the nginx directory."""
        files = {"nginx.conf": self.main_config}
        for name, content in self.includes.items():
            files[f"includes/{name}"] = content
        for block in self.blocks:
            files[f"templates/{block.filename}"] = block.content
        return files


class NginxGenerator:
    """Renders nginx server blocks for web-exposed services.

    Server names stay as ``${DOMAIN_<KEY>}`` placeholders; the proxy
    container substitutes them from the .domains file at start-up.
    """

    def __init__(
        self,
        source: str = "homelab.yaml",
        certificate: str = "/etc/nginx/ssl/fullchain.pem",
        certificate_key: str = "/etc/nginx/ssl/key.pem",
    ):
        self.source = source
        self.certificate = certificate
        self.certificate_key = certificate_key

    @property
    def header(self) -> str:
        return generated_header(self.source).rstrip("\n")

    def generate(self, service: Service) -> Optional[NginxConfigBlock]:
        """Server block for a service, or None when nothing is generated.

        Nothing is generated for services that are not web-exposed or that
        point at their own template file.
        """
        if not service.web_exposed:
            return None
        if service.nginx.template_file:
            logger.debug(f"{service.key}: using external nginx template {service.nginx.template_file}")
            return None

        env_var = domain_env_var(service.key)
        additional = service.nginx.additional_config
        content = render_template(
            SERVER_TEMPLATE,
            header=self.header,
            service=service,
            server_name="${" + env_var + "}",
            includes_dir=INCLUDES_DIR,
            additional_config=additional.rstrip("\n") if additional else None,
            upstream=service.nginx.upstream or f"{service.key}:{service.primary_port}",
        )
        return NginxConfigBlock(
            service_key=service.key,
            env_var=env_var,
            content=content,
            custom=bool(additional),
        )

    def render_main_config(self) -> str:
        return render_template(MAIN_TEMPLATE, header=self.header)

    def render_includes(self) -> Dict[str, str]:
        return {
            "ssl": render_template(
                SSL_INCLUDE,
                header=self.header,
                certificate=self.certificate,
                certificate_key=self.certificate_key,
            ),
            "proxy": render_template(PROXY_INCLUDE, header=self.header),
        }

    def generate_all(self, services: Iterable[Service]) -> NginxBundle:
        bundle = NginxBundle(main_config=self.render_main_config(), includes=self.render_includes())
        for service in services:
            block = self.generate(service)
            if block is not None:
                bundle.blocks.append(block)
            elif service.web_exposed and service.nginx.template_file:
                bundle.external[service.key] = service.nginx.template_file
        return bundle
