#!/usr/bin/env python3
"""
Nginx reverse-proxy site.

The site is rendered from nginx-site.conf.j2, written, re-read and parsed into
blocks, and the parsed structure is checked against the configuration record
before ``nginx -t`` runs. Two layouts exist:

- internal port 80: one server block serving TLS on port 80, no redirect
- any other port:   a port-80 redirect block (target carries the external port
                    when it is not 443) plus a TLS block on the internal port
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from . import console
from .config_constants import DEFAULT_HTTPS_PORT, PLAINTEXT_PORT
from .errors import ConfigurationError, ExternalToolError
from .models import ResolvedCertificate, SetupConfig
from .rendering import render_template, write_file
from .runner import run_cmd
from .settings import Settings

NOTIFICATIONS_PATH = "/notifications/hub"


@dataclass
class NginxBlock:
    name: str
    args: List[str] = field(default_factory=list)
    directives: List[Tuple[str, List[str]]] = field(default_factory=list)
    children: List["NginxBlock"] = field(default_factory=list)

    def get(self, name: str) -> List[List[str]]:
        """Argument lists of every directive called name, in file order."""
        return [args for directive, args in self.directives if directive == name]

    def blocks(self, name: str) -> List["NginxBlock"]:
        return [child for child in self.children if child.name == name]

    def location(self, path: str) -> "NginxBlock | None":
        for block in self.blocks("location"):
            if block.args == [path]:
                return block
        return None


def _tokenize(text: str) -> List[Tuple[str, bool]]:
    """Split nginx syntax into (value, is_punctuation) tokens."""
    tokens: List[Tuple[str, bool]] = []
    i, length = 0, len(text)
    while i < length:
        c = text[i]
        if c.isspace():
            i += 1
        elif c == '#':
            while i < length and text[i] != '\n':
                i += 1
        elif c in '{};':
            tokens.append((c, True))
            i += 1
        elif c in '"\'':
            end = i + 1
            chars = []
            while end < length and text[end] != c:
                if text[end] == '\\' and end + 1 < length:
                    end += 1
                chars.append(text[end])
                end += 1
            if end >= length:
                raise ValueError("unterminated quoted string")
            tokens.append((''.join(chars), False))
            i = end + 1
        else:
            start = i
            while i < length and not text[i].isspace() and text[i] not in '{};':
                i += 1
            tokens.append((text[start:i], False))
    return tokens


def parse_nginx_config(text: str) -> NginxBlock:
    """Parse nginx configuration text into a block tree rooted at 'main'."""
    root = NginxBlock("main")
    stack = [root]
    words: List[str] = []
    for value, punctuation in _tokenize(text):
        if not punctuation:
            words.append(value)
        elif value == ';':
            if not words:
                raise ValueError("empty directive")
            stack[-1].directives.append((words[0], words[1:]))
            words = []
        elif value == '{':
            if not words:
                raise ValueError("block without a name")
            block = NginxBlock(words[0], words[1:])
            stack[-1].children.append(block)
            stack.append(block)
            words = []
        else:
            if words:
                raise ValueError(f"directive '{words[0]}' is missing ';'")
            if len(stack) == 1:
                raise ValueError("unexpected '}'")
            stack.pop()
    if words:
        raise ValueError(f"directive '{words[0]}' is missing ';'")
    if len(stack) != 1:
        raise ValueError("unbalanced braces")
    return root


def redirect_suffix(config: SetupConfig) -> str:
    if config.external_port == DEFAULT_HTTPS_PORT:
        return ""
    return f":{config.external_port}"


def serves_tls_on_plaintext_port(config: SetupConfig) -> bool:
    return config.internal_port == PLAINTEXT_PORT


def upstream_url(settings: Settings) -> str:
    return f"http://127.0.0.1:{settings.app_port}"


def render_nginx_site(config: SetupConfig, cert: ResolvedCertificate, settings: Settings) -> str:
    return render_template(
        "nginx-site.conf.j2",
        redirect=not serves_tls_on_plaintext_port(config),
        plaintext_port=PLAINTEXT_PORT,
        redirect_suffix=redirect_suffix(config),
        listen_port=config.internal_port,
        domain=config.domain,
        cert_path=cert.cert_path,
        key_path=cert.key_path,
        upstream=upstream_url(settings),
    )


def _check_tls_server(server: NginxBlock, config: SetupConfig, cert: ResolvedCertificate,
                      settings: Settings) -> List[str]:
    problems: List[str] = []
    upstream = upstream_url(settings)
    if server.get("server_name") != [[config.domain]]:
        problems.append(f"server_name is not '{config.domain}'")
    if server.get("ssl_certificate") != [[str(cert.cert_path)]]:
        problems.append(f"ssl_certificate path is not '{cert.cert_path}'")
    if server.get("ssl_certificate_key") != [[str(cert.key_path)]]:
        problems.append(f"ssl_certificate_key path is not '{cert.key_path}'")

    root = server.location("/")
    if root is None or root.get("proxy_pass") != [[upstream]]:
        problems.append(f"proxy_pass for / must target {upstream}")
    elif ["X-Forwarded-For", "$proxy_add_x_forwarded_for"] not in root.get("proxy_set_header"):
        problems.append("location / does not forward client addresses")

    hub = server.location(NOTIFICATIONS_PATH)
    if hub is None or hub.get("proxy_pass") != [[upstream]]:
        problems.append(f"proxy_pass for {NOTIFICATIONS_PATH} must target {upstream}")
    else:
        headers = hub.get("proxy_set_header")
        if ["Upgrade", "$http_upgrade"] not in headers or ["Connection", "upgrade"] not in headers:
            problems.append(f"{NOTIFICATIONS_PATH} is missing connection-upgrade headers")
    return problems


def verify_nginx_site(text: str, config: SetupConfig, cert: ResolvedCertificate, settings: Settings) -> None:
    """Raise ConfigurationError unless the site matches the configuration record."""
    try:
        root = parse_nginx_config(text)
    except ValueError as e:
        raise ConfigurationError(f"Nginx config is not well-formed: {e}") from e

    problems: List[str] = []
    servers = root.blocks("server")
    tls_listen = [str(config.internal_port), "ssl", "http2"]
    tls_servers = [s for s in servers if tls_listen in s.get("listen")]
    redirect_servers = [s for s in servers if s.get("return")]

    if len(tls_servers) != 1:
        problems.append(f"expected TLS listener on internal port {config.internal_port}")
    else:
        problems.extend(_check_tls_server(tls_servers[0], config, cert, settings))

    if serves_tls_on_plaintext_port(config):
        if len(servers) != 1 or redirect_servers:
            problems.append("expected a single TLS server block and no redirect on port 80")
    else:
        expected = ["301", f"https://$server_name{redirect_suffix(config)}$request_uri"]
        if len(redirect_servers) != 1:
            problems.append("expected exactly one HTTP redirect server block")
        else:
            redirect = redirect_servers[0]
            if redirect.get("return") != [expected]:
                problems.append(f"expected HTTP redirect 'return {' '.join(expected)};'")
            if [str(PLAINTEXT_PORT)] not in redirect.get("listen"):
                problems.append(f"redirect block does not listen on {PLAINTEXT_PORT}")
            if redirect.get("server_name") != [[config.domain]]:
                problems.append(f"redirect server_name is not '{config.domain}'")
        if len(servers) != 2:
            problems.append(f"expected 2 server blocks, found {len(servers)}")

    if problems:
        raise ConfigurationError("Nginx config mismatch: " + "; ".join(problems))


def enable_site(settings: Settings) -> None:
    enabled_dir = settings.nginx_enabled_dir
    enabled_dir.mkdir(parents=True, exist_ok=True)
    link = enabled_dir / settings.nginx_site.name
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(settings.nginx_site)

    default = enabled_dir / "default"
    if default.is_symlink() or default.exists():
        default.unlink()


def configure_nginx(config: SetupConfig, cert: ResolvedCertificate, settings: Settings) -> None:
    console.step("Configuring Nginx reverse proxy...")
    write_file(settings.nginx_site, render_nginx_site(config, cert, settings), 0o644)
    enable_site(settings)

    verify_nginx_site(settings.nginx_site.read_text(encoding='utf-8'), config, cert, settings)

    result = run_cmd(["nginx", "-t"])
    if not result.ok:
        raise ExternalToolError(result.cmd, result.returncode, result.stderr,
                                action="Nginx configuration test failed")
    run_cmd(["systemctl", "restart", "nginx"], check=True, action="Failed to restart nginx")
    console.success("Nginx configured and restarted")
