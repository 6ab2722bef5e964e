import json

from infrastructure.lib.buildspec import IMAGE_DEFINITIONS_FILE, create_build_spec


class TestBuildSpec:
    """Test suite for the image build specification."""

    def test_phases_in_order(self):
        """Test that the phases run install, pre_build, build, post_build."""
        # When
        spec = create_build_spec()

        # Then
        assert spec["version"] == "0.2"
        assert list(spec["phases"]) == ["install", "pre_build", "build", "post_build"]

    def test_logs_in_to_registry_before_build(self):
        """Test that pre_build logs in to ECR and derives the image tag."""
        # When
        pre_build = create_build_spec()["phases"]["pre_build"]["commands"]

        # Then
        assert any("docker login" in command for command in pre_build)
        assert "IMAGE_TAG=${COMMIT_HASH:=latest}" in pre_build

    def test_builds_tags_and_pushes_image(self):
        """Test that the image is built, tagged, then pushed under both tags."""
        # When
        build = create_build_spec()["phases"]["build"]["commands"]

        # Then
        docker_build = build.index("docker build -f docker/Dockerfile -t $ECR_REPO:latest .")
        docker_tag = build.index("docker tag $ECR_REPO:latest $ECR_REPO:$IMAGE_TAG")
        assert docker_build < docker_tag
        assert build.index("docker push $ECR_REPO:latest") > docker_tag
        assert build.index("docker push $ECR_REPO:$IMAGE_TAG") > docker_tag

    def test_image_definitions_read_build_environment(self):
        """Test that imagedefinitions.json takes the container name and image from the environment."""
        # Given
        spec = create_build_spec()
        post_build = spec["phases"]["post_build"]["commands"]

        # When
        writer = next(c for c in post_build if c.startswith("printf"))

        # Then
        assert writer.endswith(
            f'"$CONTAINER_NAME" "$ECR_REPO:$IMAGE_TAG" > {IMAGE_DEFINITIONS_FILE}'
        )
        assert spec["artifacts"] == {"files": [IMAGE_DEFINITIONS_FILE]}

    def test_image_definitions_template_is_valid_json(self):
        """Test that the printf format renders a valid image definitions document."""
        # Given
        writer = next(
            c
            for c in create_build_spec()["phases"]["post_build"]["commands"]
            if c.startswith("printf")
        )
        # printf '<format>' "<name>" "<uri>" > file
        fmt = writer.split("'")[1]

        # When
        definitions = json.loads(fmt % ("my-service", "example.com/repo:abc1234"))

        # Then
        assert definitions == [
            {"name": "my-service", "imageUri": "example.com/repo:abc1234"}
        ]

    def test_caches_maven_repository(self):
        """Test that the Maven repository is cached between builds."""
        # When
        spec = create_build_spec()

        # Then
        assert spec["cache"] == {"paths": ["/root/.m2/**/*"]}
