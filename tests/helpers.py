"""Request helpers shared by the HTTP tests."""


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def api_register(client, name, email, password, national_id=None):
    body = {"name": name, "email": email, "password": password}
    if national_id is not None:
        body["nationalId"] = national_id
    return client.post("/api/auth/register", json=body)


def api_login(client, email, password):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def api_upload(client, token, document_type="Passport", content=b"file bytes", filename="passport.pdf", description=None):
    data = {}
    if document_type is not None:
        data["documentType"] = document_type
    if description is not None:
        data["description"] = description
    return client.post(
        "/api/documents",
        headers=bearer(token),
        files={"document": (filename, content, "application/pdf")},
        data=data,
    )
