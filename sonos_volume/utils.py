import xml.etree.ElementTree as ET
from urllib.parse import urlparse

SERVICE_NS = 'urn:schemas-upnp-org:service:{service}'


def endpoint_from_location(location):
    """Reduces a device description URL to its scheme://host[:port] part."""
    if not location:
        return None
    parsed = urlparse(location)
    if not parsed.scheme or not parsed.hostname:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def find_text(element, tag):
    """Returns the text of the first descendant named tag, in any namespace."""
    found = element.find(f'.//{{*}}{tag}')
    return found.text if found is not None else None


def soap_fault_code(response_text):
    """Extracts the UPnP errorCode from a SOAP fault body, if there is one."""
    try:
        root = ET.fromstring(response_text)
    except ET.ParseError:
        return None
    if root.find('.//{*}Fault') is None:
        return None
    return find_text(root, 'errorCode') or 'unknown'


def create_soap_body(service, action, **kwargs):
    """Builds a SOAP request envelope for service (e.g. 'AVTransport:1')."""
    arguments = ''.join(f"<{key}>{value}</{key}>" for key, value in kwargs.items())
    namespace = SERVICE_NS.format(service=service)
    return (
        '<?xml version="1.0"?>'
        '<s:Envelope xmlns:s="http://schemas.xmlsoap.org/soap/envelope/" '
        's:encodingStyle="http://schemas.xmlsoap.org/soap/encoding/">'
        '<s:Body>'
        f'<u:{action} xmlns:u="{namespace}">{arguments}</u:{action}>'
        '</s:Body>'
        '</s:Envelope>'
    )


def create_soap_headers(service, action):
    """Builds the HTTP headers that go with create_soap_body."""
    namespace = SERVICE_NS.format(service=service)
    return {
        'Content-Type': 'text/xml; charset="utf-8"',
        'SOAPACTION': f'"{namespace}#{action}"'
    }
