"""Tests for Maven POM conversion."""

import pytest

from common.errors import ParseError
from module import ModuleRevisionId
from parser import parse_pom

POM = """<?xml version="1.0" encoding="UTF-8"?>
<project xmlns="http://maven.apache.org/POM/4.0.0">
  <modelVersion>4.0.0</modelVersion>
  <parent>
    <groupId>org.example</groupId>
    <artifactId>parent</artifactId>
    <version>3.1</version>
  </parent>
  <artifactId>widget</artifactId>
  <properties>
    <junit.version>4.13</junit.version>
  </properties>
  <dependencyManagement>
    <dependencies>
      <dependency>
        <groupId>org.slf4j</groupId>
        <artifactId>slf4j-api</artifactId>
        <version>1.7.36</version>
      </dependency>
    </dependencies>
  </dependencyManagement>
  <dependencies>
    <dependency>
      <groupId>org.slf4j</groupId>
      <artifactId>slf4j-api</artifactId>
    </dependency>
    <dependency>
      <groupId>junit</groupId>
      <artifactId>junit</artifactId>
      <version>${junit.version}</version>
      <scope>test</scope>
    </dependency>
    <dependency>
      <groupId>${project.groupId}</groupId>
      <artifactId>widget-native</artifactId>
      <version>${project.version}</version>
      <classifier>linux</classifier>
      <optional>true</optional>
    </dependency>
  </dependencies>
</project>
"""


class TestParsePom:
    def setup_method(self):
        self.md = parse_pom(POM, "widget-3.1.pom")

    def test_coordinates_inherit_from_parent(self):
        assert self.md.module_revision_id == ModuleRevisionId("org.example", "widget", "3.1")
        assert self.md.status == "release"

    def test_maven_configurations(self):
        assert "default" in self.md.configuration_names()
        assert self.md.expand_configurations(["default"]) == {"default", "runtime", "compile", "master"}
        assert not self.md.get_configuration("test").is_public

    def test_main_artifact_in_master(self):
        assert [(a.name, a.ext, a.confs) for a in self.md.artifacts] == [("widget", "jar", ("master",))]

    def test_managed_version(self):
        slf4j = self.md.dependencies[0]
        assert slf4j.dependency_revision_id == ModuleRevisionId("org.slf4j", "slf4j-api", "1.7.36")
        assert slf4j.dependency_configurations("compile") == ("compile(*)", "master(*)")

    def test_property_substitution_and_scope(self):
        junit = self.md.dependencies[1]
        assert junit.dependency_revision_id.revision == "4.13"
        assert junit.dependency_configurations("test") == ("runtime(*)", "master(*)")
        assert junit.dependency_configurations("compile") == ()

    def test_optional_with_classifier(self):
        native = self.md.dependencies[2]
        assert native.dependency_revision_id == ModuleRevisionId("org.example", "widget-native", "3.1")
        assert native.module_configurations() == ("optional",)
        assert native.dependency_artifacts[0].extra_attributes == (("classifier", "linux"),)

    def test_pom_packaging_has_no_artifact(self):
        md = parse_pom("<project><groupId>g</groupId><artifactId>bom</artifactId><version>1.0-SNAPSHOT"
                       "</version><packaging>pom</packaging></project>")
        assert md.artifacts == ()
        assert md.status == "integration"


class TestPomErrors:
    @pytest.mark.parametrize("data", [
        "<project><artifactId>a</artifactId></project>",
        "<project><groupId>g</groupId><artifactId>a</artifactId><version>1</version>"
        "<dependencies><dependency><groupId>x</groupId><artifactId>y</artifactId></dependency>"
        "</dependencies></project>",
        "<project>",
    ])
    def test_malformed(self, data):
        with pytest.raises(ParseError):
            parse_pom(data, "bad.pom")
