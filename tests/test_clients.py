import json
import unittest


def _github(handler):
    import httpx

    from syncbridge.services.github_client import GitHubClient

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.github.com")
    return GitHubClient("token", "acme/widgets", http=http), http


def _linear(handler):
    import httpx

    from syncbridge.services.linear_client import LinearClient

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LinearClient("lin_api", http=http, public_file_expiry_seconds=60), http


class GitHubClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_transient_errors_are_retried_for_idempotent_calls(self):
        import httpx

        attempts = []

        def handler(request):
            attempts.append(request.method)
            if len(attempts) < 3:
                return httpx.Response(502, json={"message": "bad gateway"})
            return httpx.Response(200, json={"number": 7})

        client, http = _github(handler)
        async with http:
            issue = await client._request("GET", "/repos/acme/widgets/issues/7", base_delay_s=0)
        self.assertEqual(issue, {"number": 7})
        self.assertEqual(len(attempts), 3)

    async def test_posts_are_sent_once(self):
        import httpx

        from syncbridge.services.github_client import GitHubAPIError

        attempts = []

        def handler(request):
            attempts.append(request.method)
            return httpx.Response(503, json={"message": "unavailable"})

        client, http = _github(handler)
        async with http:
            with self.assertRaises(GitHubAPIError) as ctx:
                await client.create_issue("title", "body")
        self.assertEqual(attempts, ["POST"])
        self.assertEqual(ctx.exception.status_code, 503)

    async def test_existing_label_counts_as_created(self):
        import httpx

        def handler(request):
            if request.method == "POST":
                return httpx.Response(
                    422, json={"message": "Validation Failed", "errors": [{"code": "already_exists"}]}
                )
            return httpx.Response(200, json={"name": "High priority", "color": "eb6420"})

        client, http = _github(handler)
        async with http:
            label = await client.create_label("High priority", "#eb6420")
        self.assertEqual(label["color"], "eb6420")

    async def test_removing_a_missing_label_is_not_an_error(self):
        import httpx

        seen = []

        def handler(request):
            seen.append(request.url.raw_path.decode())
            return httpx.Response(404, json={"message": "Label does not exist"})

        client, http = _github(handler)
        async with http:
            self.assertFalse(await client.remove_label(7, "3 points"))
        self.assertEqual(seen, ["/repos/acme/widgets/issues/7/labels/3%20points"])


class LinearClientTests(unittest.IsolatedAsyncioTestCase):
    async def test_graphql_errors_are_raised(self):
        import httpx

        from syncbridge.services.linear_client import LinearAPIError

        def handler(request):
            return httpx.Response(200, json={"errors": [{"message": "Entity not found"}]})

        client, http = _linear(handler)
        async with http:
            with self.assertRaises(LinearAPIError) as ctx:
                await client.query("query { viewer { id } }")
        self.assertIn("Entity not found", str(ctx.exception))

    async def test_queries_retry_but_mutations_do_not(self):
        import httpx

        from syncbridge.services.linear_client import LinearAPIError

        documents = []

        def handler(request):
            documents.append(json.loads(request.content)["query"])
            return httpx.Response(429, text="slow down")

        client, http = _linear(handler)
        async with http:
            with self.assertRaises(LinearAPIError):
                await client.query("query { viewer { id } }", base_delay_s=0)
            self.assertEqual(len(documents), 3)
            with self.assertRaises(LinearAPIError):
                await client.query("mutation { issueArchive(id: \"x\") { success } }", base_delay_s=0)
        self.assertEqual(len(documents), 4)

    async def test_public_urls_header_is_sent_on_request(self):
        import httpx

        from syncbridge.services.linear_client import PUBLIC_FILE_URLS_HEADER

        headers = []

        def handler(request):
            headers.append(request.headers.get(PUBLIC_FILE_URLS_HEADER))
            return httpx.Response(200, json={"data": {"issue": {"id": "issue-1"}}})

        client, http = _linear(handler)
        async with http:
            await client.get_issue("issue-1")
            issue = await client.get_issue("issue-1", public_urls=True)
        self.assertEqual(issue, {"id": "issue-1"})
        self.assertEqual(headers, [None, "60"])

    async def test_unsuccessful_mutation_is_raised(self):
        import httpx

        from syncbridge.services.linear_client import LinearAPIError

        def handler(request):
            return httpx.Response(200, json={"data": {"issueUpdate": {"success": False}}})

        client, http = _linear(handler)
        async with http:
            with self.assertRaises(LinearAPIError):
                await client.update_issue("issue-1", {"title": "x"})

    async def test_archive_issue_sends_mutation(self):
        import httpx

        sent = []

        def handler(request):
            sent.append(json.loads(request.content))
            return httpx.Response(200, json={"data": {"issueArchive": {"success": True}}})

        client, http = _linear(handler)
        async with http:
            await client.archive_issue("issue-1")
        self.assertEqual(sent[0]["variables"], {"id": "issue-1"})
        self.assertIn("issueArchive", sent[0]["query"])


if __name__ == "__main__":
    unittest.main()
