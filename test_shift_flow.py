# test_shift_flow.py


def jprint(step, r):
    assert 200 <= r.status_code < 300, f"{step} -> {r.status_code}: {r.text}"
    return r.json() if r.headers.get("content-type", "").startswith("application/json") else r.text


def test_shift_lifecycle_and_summary(client, base_url, auth_headers, rng_suffix):
    r = client.get(f"{base_url}/shifts/active", headers=auth_headers)
    assert r.status_code == 204

    r = client.post(f"{base_url}/staff/", headers=auth_headers, json={
        "name": "Mike", "login": f"mike-{rng_suffix}", "password": "pw"
    })
    mike_id = jprint("POST /staff", r)["id"]

    r = client.post(f"{base_url}/shifts/open", headers=auth_headers, json={
        "bartenders": [mike_id], "opening_note": "evening", "opening_cash_amount": 3000
    })
    shift = jprint("POST /shifts/open", r)
    sid = shift["id"]
    assert shift["status"] == "open"
    assert [b["name"] for b in shift["bartenders"]] == ["Mike"]

    r = client.post(f"{base_url}/shifts/open", headers=auth_headers, json={})
    assert r.status_code == 409, r.text

    r = client.get(f"{base_url}/shifts/active", headers=auth_headers)
    assert jprint("GET /shifts/active", r)["id"] == sid

    r = client.post(f"{base_url}/products/", headers=auth_headers, json={
        "name": f"Wine-{rng_suffix}", "price": 300, "stock": 20
    })
    wine_id = jprint("POST /products (Wine)", r)["id"]

    def _order(qty, guests=1):
        r = client.post(f"{base_url}/orders/", headers=auth_headers, json={
            "guest_name": f"G-{rng_suffix}", "guests_count": guests,
            "order_items": [{"product_id": wine_id, "quantity": qty}],
        })
        return jprint("POST /orders", r)["id"]

    o1, o2, o3 = _order(2, guests=2), _order(1), _order(1)
    jprint("close o1", client.post(f"{base_url}/orders/{o1}/close", headers=auth_headers,
                                   json={"status": "completed", "payment_method": "cash"}))
    jprint("discount o2", client.put(f"{base_url}/orders/{o2}/discount", headers=auth_headers,
                                     json={"discount_percent": 10}))
    jprint("close o2", client.post(f"{base_url}/orders/{o2}/close", headers=auth_headers,
                                   json={"status": "completed", "payment_method": "card"}))
    jprint("close o3", client.post(f"{base_url}/orders/{o3}/close", headers=auth_headers,
                                   json={"status": "cancelled"}))

    r = client.get(f"{base_url}/shifts/{sid}/orders", headers=auth_headers)
    assert [o["id"] for o in jprint("GET shift orders", r)] == [o1, o2, o3]

    r = client.get(f"{base_url}/shifts/{sid}", headers=auth_headers, params={"recompute": True})
    live = jprint("GET /shifts/{id}?recompute", r)["summary"]
    assert live["orders"] == {"total": 3, "completed": 2, "cancelled": 1}

    r = client.post(f"{base_url}/shifts/{sid}/close", headers=auth_headers, json={
        "closing_note": "ok", "closing_cash_amount": 3600
    })
    closed = jprint("POST /shifts/{id}/close", r)
    assert closed["status"] == "closed"
    summary = closed["summary"]
    assert summary["orders"] == {"total": 3, "completed": 2, "cancelled": 1}
    assert summary["revenue"] == {"gross": 1200.0, "discount": 30.0, "net": 1170.0}
    assert summary["avg_check_net"] == 435.0
    assert summary["guests"] == 3
    assert summary["payments"] == {"cash": 600.0, "card": 270.0, "transfer": 0.0}

    r = client.post(f"{base_url}/shifts/{sid}/close", headers=auth_headers, json={})
    assert r.status_code == 400, r.text

    r = client.get(f"{base_url}/shifts/active", headers=auth_headers)
    assert r.status_code == 204

    r = client.get(f"{base_url}/shifts/", headers=auth_headers)
    assert [s["id"] for s in jprint("GET /shifts", r)] == [sid]


def test_open_shift_with_unknown_bartender(client, base_url, auth_headers):
    r = client.post(f"{base_url}/shifts/open", headers=auth_headers, json={"bartenders": ["nobody"]})
    assert r.status_code == 404, r.text
    r = client.get(f"{base_url}/shifts/active", headers=auth_headers)
    assert r.status_code == 204
