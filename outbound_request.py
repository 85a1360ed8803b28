# outbound_request.py

from dataclasses import dataclass, field, replace


@dataclass(frozen=True)
class MultipartFile:
    """
    A file part of a multipart/form-data callback request.

    Attributes:
        field (str): The form field name.
        filename (str): The file name sent in the Content-Disposition header.
        content (bytes): The file content.
        content_type (str): The MIME type of the part.
    """
    field: str
    filename: str
    content: bytes
    content_type: str = 'application/octet-stream'


@dataclass(frozen=True)
class OutboundRequest:
    """
    Logical description of one callback request.

    A request either carries a multipart body (form fields and files), a raw
    body, or no body at all. Requests are rebuilt for every send attempt and
    never reused.

    Attributes:
        method (str): HTTP method.
        url (str): Target URL.
        headers (tuple): Ordered (name, value) pairs.
        query (tuple): Ordered (name, value) query parameters.
        multipart (bool): Whether the body is multipart/form-data.
        form (tuple): Ordered (name, value) form fields of a multipart body.
        files (tuple): MultipartFile parts of a multipart body.
        content (bytes): Raw body, or None.
    """
    method: str
    url: str
    headers: tuple = field(default_factory=tuple)
    query: tuple = field(default_factory=tuple)
    multipart: bool = False
    form: tuple = field(default_factory=tuple)
    files: tuple = field(default_factory=tuple)
    content: bytes = None

    def with_files(self, files):
        """Returns a copy of this request carrying the given files in its multipart body."""
        return replace(self, multipart=True, files=tuple(files))

    def header(self, name):
        """Returns the last value set for a header (case-insensitive), or None."""
        value = None
        for key, header_value in self.headers:
            if key.lower() == name.lower():
                value = header_value
        return value

    def build(self, client, timeout=None):
        """
        Builds an httpx.Request for this description.

        Form fields are sent as file-less multipart parts so a form without
        attachments is still encoded as multipart/form-data.

        Args:
            client (httpx.Client): The client whose defaults apply to the request.
            timeout (float): Per-request timeout in seconds; the client default when None.

        Returns:
            httpx.Request: The request ready to be sent.
        """
        headers = {}
        for key, value in self.headers:
            headers[key] = value

        kwargs = {
            'params': list(self.query),
            'headers': headers,
        }
        if self.multipart:
            parts = [(key, (None, value.encode('utf-8'))) for key, value in self.form]
            parts.extend(
                (f.field, (f.filename, f.content, f.content_type)) for f in self.files
            )
            if parts:
                kwargs['files'] = parts
        elif self.content is not None:
            kwargs['content'] = self.content

        if timeout is not None:
            kwargs['timeout'] = timeout
        return client.build_request(self.method, self.url, **kwargs)
